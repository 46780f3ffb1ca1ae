"""
Single-instance guard backed by a pidfile

The pidfile holds the decimal pid of the running instance. A pidfile whose pid
is dead, or belongs to a process with a different name, is stale and gets
replaced without complaint.
"""

import logging
import os
import tempfile
from pathlib import Path

import psutil

from .errors import AlreadyRunning, ConfigError, GuardIOError

logger = logging.getLogger('netspeed.guard')

DEFAULT_PIDFILE_NAME = '.netspeed.pid'


def default_pidfile():
    try:
        home = Path.home()
    except (RuntimeError, KeyError) as e:
        raise ConfigError(f"failed to determine your home directory: {e}") from e
    return home / DEFAULT_PIDFILE_NAME


def current_identity():
    """Process name other instances of this program will report"""
    return psutil.Process().name()


class SingletonGuard:
    def __init__(self, pidfile, identity=None):
        self.pidfile = Path(pidfile)
        self.identity = identity or current_identity()
        self.acquired = False

    def _read_pid(self):
        try:
            content = self.pidfile.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise GuardIOError(f"the pidfile \"{self.pidfile}\" exists but cannot be read: {e}") from e
        try:
            return int(content.strip())
        except ValueError:
            logger.debug("pidfile %s has unparsable content %r", self.pidfile, content)
            return -1

    def _is_instance(self, pid):
        if pid <= 0 or not psutil.pid_exists(pid):
            return False
        if pid == os.getpid():
            # left over from an earlier boot or container run that got our pid
            return False
        try:
            return psutil.Process(pid).name() == self.identity
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Can't verify the name, so assume it is ours
            return True

    def _remove_stale(self, pid):
        logger.debug("removing stale pidfile %s (pid %s)", self.pidfile, pid)
        try:
            self.pidfile.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise GuardIOError(f"failed to remove the stale pidfile \"{self.pidfile}\": {e}") from e

    def running_pid(self):
        """Pid of a live instance holding the pidfile, or None.

        Stale pidfiles are removed as a side effect.
        """
        pid = self._read_pid()
        if pid is None:
            return None
        if self._is_instance(pid):
            return pid
        self._remove_stale(pid)
        return None

    def _create(self):
        """Atomically create the pidfile with our pid. Returns False if it already exists."""
        try:
            fd, tmp = tempfile.mkstemp(prefix='.netspeed-pid-', dir=self.pidfile.parent)
        except OSError as e:
            raise GuardIOError(f"failed to create the pidfile \"{self.pidfile}\": {e}") from e
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(f"{os.getpid()}\n")
            os.chmod(tmp, 0o644)
            # fails if the pidfile already exists
            os.link(tmp, self.pidfile)
        except FileExistsError:
            return False
        except OSError as e:
            raise GuardIOError(f"failed to create the pidfile \"{self.pidfile}\": {e}") from e
        finally:
            os.unlink(tmp)
        return True

    def acquire(self):
        # A pidfile that shows up between the check and the create is checked
        # again; if that one is stale too, give up rather than loop.
        for _ in range(2):
            pid = self.running_pid()
            if pid is not None:
                raise AlreadyRunning(pid, self.pidfile)
            if self._create():
                self.acquired = True
                logger.debug("wrote pidfile %s", self.pidfile)
                return
            logger.debug("pidfile %s appeared while acquiring, checking it again", self.pidfile)

        pid = self.running_pid()
        if pid is not None:
            raise AlreadyRunning(pid, self.pidfile)
        raise GuardIOError(f"failed to create the pidfile \"{self.pidfile}\": it keeps reappearing")

    def release(self):
        """Remove the pidfile if this guard created it. Safe to call repeatedly."""
        if not self.acquired:
            return
        self.acquired = False
        try:
            self.pidfile.unlink()
        except FileNotFoundError:
            logger.warning("pidfile %s was already removed", self.pidfile)
        except OSError as e:
            raise GuardIOError(f"failed to remove the pidfile \"{self.pidfile}\": {e}") from e
        else:
            logger.debug("removed pidfile %s", self.pidfile)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
