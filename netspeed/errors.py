"""
Exception hierarchy for netspeed
"""


class NetspeedError(Exception):
    """Base class for all netspeed errors"""


class ConfigError(NetspeedError):
    """Invalid command line configuration"""


class GuardIOError(NetspeedError):
    """The pidfile could not be created, read or removed"""


class AlreadyRunning(NetspeedError):
    """Another netspeed instance holds the pidfile"""

    def __init__(self, pid, pidfile=None):
        self.pid = pid
        self.pidfile = pidfile
        super().__init__(f"a process named netspeed with the pid {pid} is already running")


class SampleError(NetspeedError):
    """Reading the interface counters failed"""


class OutputError(NetspeedError):
    """A record could not be written or the output file could not be removed"""
