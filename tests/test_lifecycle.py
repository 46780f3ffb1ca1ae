import os
import signal
import threading
import time

import pytest
from conftest import FakeSource, RecordingSink, counting_samples, sample_set, snap

from netspeed.errors import OutputError, SampleError
from netspeed.guard import SingletonGuard
from netspeed.lifecycle import EXIT_ERROR, EXIT_OK, Controller, State, StopToken


def make_controller(config, source, stop_after=3):
    sink = RecordingSink(stop_after=stop_after)
    guard = SingletonGuard(config.pidfile, identity='netspeed')
    controller = Controller(config, source, guard=guard, sink=sink)
    sink.on_emit = controller.stop
    return controller, sink


def test_clean_run_emits_one_record_per_tick(config, pidfile):
    controller, sink = make_controller(config, FakeSource(counting_samples(10)), stop_after=1)
    seen = []
    sink.on_emit = lambda: (seen.append(pidfile.exists()), controller.stop())
    assert controller.run() == EXIT_OK
    assert seen == [True]
    assert controller.state is State.TERMINATED
    assert sink.records == [{
        'timestamp': 101, 'interface': 'en0',
        'kbytes_sent': 1000 / 1024, 'kbytes_recv': 2000 / 1024,
        'packets_sent': 1, 'packets_recv': 2,
    }]
    assert sink.cleaned
    assert not pidfile.exists()


def test_shutdown_signal_stops_loop_and_cleans_up(config, pidfile):
    controller, sink = make_controller(config, FakeSource(counting_samples(10)), stop_after=2)
    sink.on_emit = lambda: len(sink.records) == 2 and os.kill(os.getpid(), signal.SIGTERM)
    before = signal.getsignal(signal.SIGTERM)
    with controller.install_signal_handlers():
        assert controller.run() == EXIT_OK
    assert signal.getsignal(signal.SIGTERM) == before
    assert len(sink.records) == 2
    assert not pidfile.exists()


def test_unknown_interface_is_config_error(config, pidfile):
    config.interface = 'ppp0'
    controller, sink = make_controller(config, FakeSource(counting_samples(3)))
    assert controller.run() == EXIT_ERROR
    assert controller.state is State.TERMINATED
    assert not pidfile.exists()
    assert sink.records == []


def test_already_running_leaves_pidfile(config, pidfile, sleeper):
    pid, name = sleeper
    pidfile.write_text(f"{pid}\n")
    guard = SingletonGuard(pidfile, identity=name)
    controller = Controller(config, FakeSource(counting_samples(3)), guard=guard, sink=RecordingSink())
    assert controller.run() == EXIT_ERROR
    assert pidfile.read_text() == f"{pid}\n"


def test_failed_sample_skips_tick(config, pidfile):
    samples = counting_samples(4)
    source = FakeSource([samples[0], SampleError('boom'), samples[2], samples[3]])
    controller, sink = make_controller(config, source, stop_after=2)
    assert controller.run() == EXIT_OK
    assert controller.skipped == 1
    # the first delta after the failure spans both ticks
    assert [r['packets_sent'] for r in sink.records] == [2, 1]
    assert not pidfile.exists()


def test_failed_baseline_is_fatal(config, pidfile):
    source = FakeSource([SampleError('boom')], interfaces=['en0'])
    controller, sink = make_controller(config, source)
    assert controller.run() == EXIT_ERROR
    assert sink.cleaned
    assert not pidfile.exists()


def test_output_error_is_fatal(config, pidfile):
    class BrokenSink(RecordingSink):
        def emit(self, record):
            raise OutputError("disk full")

    sink = BrokenSink()
    controller = Controller(config, FakeSource(counting_samples(5)),
                            guard=SingletonGuard(pidfile, identity='netspeed'), sink=sink)
    assert controller.run() == EXIT_ERROR
    assert sink.cleaned
    assert not pidfile.exists()


def test_missing_target_tick_is_not_emitted(config):
    source = FakeSource([
        sample_set(1, snap('en0', 100), snap('lo0')),
        sample_set(2, snap('lo0')),
        sample_set(3, snap('en0', 300), snap('lo0')),
        sample_set(4, snap('en0', 700), snap('lo0')),
    ])
    controller, sink = make_controller(config, source, stop_after=1)
    assert controller.run() == EXIT_OK
    # tick 2 has no en0, tick 3 has no en0 baseline, tick 4 is the first delta
    assert sink.records[0]['timestamp'] == 4
    assert sink.records[0]['kbytes_sent'] == 400 / 1024


def test_all_interfaces_mode(config):
    config.interface = None
    config.all_interfaces = True
    source = FakeSource([
        sample_set(1, snap('en0', 1000), snap('lo0', 10)),
        sample_set(2, snap('en0', 1500), snap('lo0', 10), snap('eth9', 5)),
    ])
    controller, sink = make_controller(config, source, stop_after=1)
    assert controller.run() == EXIT_OK
    record = sink.records[0]
    assert [(i['interface'], i['bytes_sent']) for i in record['interfaces']] == [('en0', 500), ('lo0', 0)]


def test_outfile_is_removed_on_shutdown(config, pidfile, tmp_path):
    outfile = tmp_path / 'netspeed.json'
    config.outfile = str(outfile)
    controller = Controller(config, FakeSource(counting_samples(5)),
                            guard=SingletonGuard(pidfile, identity='netspeed'))
    seen = []
    emit = controller.sink.emit

    def emit_then_stop(record):
        emit(record)
        seen.append(outfile.read_text())
        controller.stop()

    controller.sink.emit = emit_then_stop
    assert controller.run() == EXIT_OK
    assert '"interface": "en0"' in seen[0]
    assert not outfile.exists()
    assert not pidfile.exists()


def test_stop_before_first_tick(config, pidfile):
    controller, sink = make_controller(config, FakeSource(counting_samples(3)))
    controller.stop()
    assert controller.run() == EXIT_OK
    assert sink.records == []
    assert not pidfile.exists()


def test_terminated_controller_cannot_rerun(config):
    controller, _ = make_controller(config, FakeSource(counting_samples(3)), stop_after=1)
    controller.run()
    with pytest.raises(RuntimeError):
        controller.run()


def test_stop_token_wait():
    token = StopToken(poll_interval=0.01)
    assert token.wait(0.05) is False
    assert token.wait(0) is False
    token.set()
    start = time.monotonic()
    assert token.wait(5) is True
    assert time.monotonic() - start < 1


def test_signal_during_wait_ends_run_promptly(config, pidfile):
    config.tick = 5
    controller, sink = make_controller(config, FakeSource(counting_samples(3)))
    timer = threading.Timer(0.3, os.kill, (os.getpid(), signal.SIGTERM))
    start = time.monotonic()
    with controller.install_signal_handlers():
        timer.start()
        code = controller.run()
    timer.join()
    assert code == EXIT_OK
    assert time.monotonic() - start < 2
    assert sink.records == []
    assert not pidfile.exists()


def test_unknown_unit_is_config_error(config, pidfile):
    config.unit = 'mbytes'
    controller, sink = make_controller(config, FakeSource(counting_samples(3)))
    assert controller.run() == EXIT_ERROR
    assert not pidfile.exists()
