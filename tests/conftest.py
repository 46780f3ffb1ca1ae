import subprocess
import sys

import psutil
import pytest

from netspeed.config import Config
from netspeed.counters import InterfaceSnapshot, SampleSet


def snap(name, bytes_sent=0, bytes_recv=0, packets_sent=0, packets_recv=0):
    return InterfaceSnapshot(name, bytes_sent, bytes_recv, packets_sent, packets_recv)


def sample_set(timestamp, *snapshots):
    return SampleSet(timestamp, tuple(snapshots))


class FakeSource:
    """Replays scripted samples; an exception instance in the script is raised instead"""

    def __init__(self, samples, interfaces=None):
        self.samples = list(samples)
        self.interfaces = interfaces
        self.calls = 0

    def list_interfaces(self):
        if self.interfaces is not None:
            return sorted(self.interfaces)
        return sorted(self.samples[0].names())

    def sample(self):
        item = self.samples[min(self.calls, len(self.samples) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item


class RecordingSink:
    def __init__(self, stop_after=None, on_emit=None):
        self.records = []
        self.stop_after = stop_after
        self.on_emit = on_emit
        self.cleaned = False

    def emit(self, record):
        self.records.append(record)
        if self.on_emit and self.stop_after and len(self.records) >= self.stop_after:
            self.on_emit()

    def cleanup(self):
        self.cleaned = True


def counting_samples(n, name='en0', step=1000):
    return [sample_set(100 + i, snap(name, bytes_sent=i * step, bytes_recv=i * step * 2,
                                     packets_sent=i, packets_recv=i * 2))
            for i in range(n)]


@pytest.fixture
def pidfile(tmp_path):
    return tmp_path / 'netspeed.pid'


@pytest.fixture
def config(pidfile):
    return Config(interface='en0', pidfile=pidfile, tick=0)


@pytest.fixture
def sleeper():
    """A live child process, with the name psutil reports for it"""
    proc = subprocess.Popen([sys.executable, '-c', 'import time; print("ready", flush=True); time.sleep(60)'],
                            stdout=subprocess.PIPE, text=True)
    proc.stdout.readline()
    try:
        yield proc.pid, psutil.Process(proc.pid).name()
    finally:
        proc.kill()
        proc.wait()
        proc.stdout.close()


@pytest.fixture
def dead_pid():
    proc = subprocess.Popen([sys.executable, '-c', 'pass'])
    proc.wait()
    return proc.pid

