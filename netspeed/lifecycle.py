"""
Lifecycle controller

Drives a netspeed run from validation to exit code:

    IDLE -> GUARDED -> RUNNING -> SHUTTING_DOWN -> TERMINATED

Signal handlers only set the stop token; the sampling loop runs in the calling
thread and checks the token between ticks, so a tick is always either fully
emitted or not emitted at all.
"""

import logging
import signal
import time
from contextlib import contextmanager
from enum import Enum

from .errors import (AlreadyRunning, ConfigError, GuardIOError, NetspeedError,
                     OutputError, SampleError)
from .guard import SingletonGuard
from .output import make_formatter, make_sink
from .sampler import Sampler

logger = logging.getLogger('netspeed.lifecycle')

EXIT_OK = 0
EXIT_ERROR = 1

SHUTDOWN_SIGNALS = tuple(
    getattr(signal, name) for name in ('SIGINT', 'SIGTERM', 'SIGQUIT') if hasattr(signal, name)
)
RELOAD_SIGNAL = getattr(signal, 'SIGHUP', None)

# longest delay between a shutdown signal and the loop noticing it
POLL_INTERVAL = 0.1


class StopToken:
    """Cancellation flag that a signal handler can set.

    Setting it takes no locks, so it is safe from a handler interrupting the
    main thread at any point. `wait` sleeps in short slices and checks the flag
    after each one.
    """

    def __init__(self, poll_interval=POLL_INTERVAL):
        self.poll_interval = poll_interval
        self._stopped = False

    def set(self):
        self._stopped = True

    def is_set(self):
        return self._stopped

    def wait(self, timeout):
        """Sleep up to `timeout` seconds. Returns True if the token was set."""
        deadline = time.monotonic() + timeout
        while not self._stopped:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(self.poll_interval, remaining))
        return self._stopped


class State(Enum):
    IDLE = 'idle'
    GUARDED = 'guarded'
    RUNNING = 'running'
    SHUTTING_DOWN = 'shutting_down'
    TERMINATED = 'terminated'


class Controller:
    def __init__(self, config, source, guard=None, sink=None, formatter=None, stop_token=None):
        self.config = config
        self.source = source
        self.guard = guard or SingletonGuard(config.pidfile)
        self.sink = sink or make_sink(config)
        self.formatter = formatter
        self.stop_token = stop_token or StopToken()
        self.state = State.IDLE
        self.ticks = 0
        self.skipped = 0

    def stop(self):
        self.stop_token.set()

    def _handle_signal(self, signum, frame):
        logger.info("Got %s, exiting.", signal.Signals(signum).name)
        self.stop_token.set()

    def _handle_reload(self, signum, frame):
        logger.info("Got %s, reload is not supported - ignoring.", signal.Signals(signum).name)

    @contextmanager
    def install_signal_handlers(self):
        """Install shutdown handlers for the duration of the block"""
        previous = {}
        try:
            for sig in SHUTDOWN_SIGNALS:
                previous[sig] = signal.signal(sig, self._handle_signal)
            if RELOAD_SIGNAL is not None:
                previous[RELOAD_SIGNAL] = signal.signal(RELOAD_SIGNAL, self._handle_reload)
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def _wait(self):
        """Sleep one tick. Returns True if shutdown was requested."""
        return self.stop_token.wait(self.config.tick)

    def _acquire(self):
        try:
            self.config.validate(self.source.list_interfaces())
        except SampleError as e:
            raise ConfigError(f"failed to populate the list of interfaces: {e}") from e
        if self.formatter is None:
            self.formatter = make_formatter(self.config)
        self.guard.acquire()
        self.state = State.GUARDED

    def _tick(self, sampler, previous):
        try:
            current = sampler.take_snapshot()
        except SampleError as e:
            self.skipped += 1
            logger.warning("skipping tick: %s", e)
            return previous

        records = sampler.compute_deltas(previous, current)
        record = self.formatter.format(current.timestamp, records)
        if record is None:
            logger.debug("no counters for %s this tick", self.config.interface)
        else:
            self.sink.emit(record)
            self.ticks += 1
        return current

    def _loop(self):
        sampler = Sampler(self.source, self.config.interfaces)
        previous = sampler.take_snapshot()
        self.state = State.RUNNING
        if self._wait():
            return
        while True:
            previous = self._tick(sampler, previous)
            if self._wait():
                return

    def _shutdown(self):
        self.state = State.SHUTTING_DOWN
        ok = True
        try:
            self.sink.cleanup()
        except OutputError as e:
            logger.error("%s", e)
            logger.error("please delete it manually")
            ok = False
        try:
            self.guard.release()
        except GuardIOError as e:
            logger.error("%s", e)
            logger.error("please delete it manually")
            ok = False
        return ok

    def run(self):
        """Run until a shutdown signal or a fatal error. Returns the exit code."""
        if self.state is not State.IDLE:
            raise RuntimeError(f"controller cannot be run from state {self.state.value}")

        try:
            self._acquire()
        except AlreadyRunning as e:
            logger.error("%s (pidfile %s)", e, e.pidfile)
            self.state = State.TERMINATED
            return EXIT_ERROR
        except NetspeedError as e:
            logger.error("%s", e)
            self.state = State.TERMINATED
            return EXIT_ERROR

        code = EXIT_OK
        try:
            self._loop()
        except NetspeedError as e:
            logger.error("%s", e)
            code = EXIT_ERROR
        finally:
            if not self._shutdown():
                code = EXIT_ERROR
            self.state = State.TERMINATED
        logger.debug("emitted %d records, skipped %d ticks", self.ticks, self.skipped)
        return code
