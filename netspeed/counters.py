"""
Per-interface network counters

Wraps psutil.net_io_counters(pernic=True) into immutable snapshots.
"""

import time
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

import psutil

from .errors import SampleError


@dataclass(frozen=True)
class InterfaceSnapshot:
    """Counters of one interface at one instant"""
    name: str
    bytes_sent: int
    bytes_recv: int
    packets_sent: int
    packets_recv: int


@dataclass(frozen=True)
class SampleSet:
    """All interface snapshots taken by a single counter read"""
    timestamp: int
    snapshots: Tuple[InterfaceSnapshot, ...]

    def __iter__(self):
        return iter(self.snapshots)

    def __len__(self):
        return len(self.snapshots)

    def names(self):
        return [s.name for s in self.snapshots]

    def by_name(self) -> Dict[str, InterfaceSnapshot]:
        return {s.name: s for s in self.snapshots}

    def only(self, names: Iterable[str]) -> 'SampleSet':
        """Return a copy restricted to the given interface names"""
        wanted = set(names)
        return SampleSet(self.timestamp, tuple(s for s in self.snapshots if s.name in wanted))


def timestamp_s() -> int:
    return int(time.time())


class CounterSource:
    """Reads interface counters from the operating system via psutil"""

    def _read(self):
        try:
            return psutil.net_io_counters(pernic=True)
        except (OSError, RuntimeError) as e:
            raise SampleError(f"failed to read interface counters: {e}") from e

    def list_interfaces(self):
        """Sorted list of interface names"""
        return sorted(self._read())

    def sample(self, timestamp: Optional[int] = None) -> SampleSet:
        counters = self._read()
        ts = timestamp if timestamp is not None else timestamp_s()
        snapshots = tuple(
            InterfaceSnapshot(
                name=name,
                bytes_sent=int(c.bytes_sent),
                bytes_recv=int(c.bytes_recv),
                packets_sent=int(c.packets_sent),
                packets_recv=int(c.packets_recv),
            )
            for name, c in counters.items()
        )
        return SampleSet(ts, snapshots)
