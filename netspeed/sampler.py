"""
Sampler and delta engine

Interfaces are matched by name between two consecutive sample sets. Counters
are subtracted as-is: a counter reset shows up as a negative delta for one tick.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .counters import SampleSet


@dataclass(frozen=True)
class DeltaRecord:
    timestamp: int
    interface: str
    delta_bytes_sent: int
    delta_bytes_recv: int
    delta_packets_sent: int
    delta_packets_recv: int


def compute_deltas(previous: SampleSet, current: SampleSet) -> List[DeltaRecord]:
    """Deltas for every interface present in both sets, in the order of `current`"""
    baseline = previous.by_name()
    records = []
    for snap in current:
        prev = baseline.get(snap.name)
        if prev is None:
            continue
        records.append(DeltaRecord(
            timestamp=current.timestamp,
            interface=snap.name,
            delta_bytes_sent=snap.bytes_sent - prev.bytes_sent,
            delta_bytes_recv=snap.bytes_recv - prev.bytes_recv,
            delta_packets_sent=snap.packets_sent - prev.packets_sent,
            delta_packets_recv=snap.packets_recv - prev.packets_recv,
        ))
    return records


class Sampler:
    def __init__(self, source, interfaces: Optional[Sequence[str]] = None):
        self.source = source
        self.interfaces = list(interfaces) if interfaces else None

    def take_snapshot(self) -> SampleSet:
        sample = self.source.sample()
        if self.interfaces is not None:
            sample = sample.only(self.interfaces)
        return sample

    def compute_deltas(self, previous: SampleSet, current: SampleSet) -> List[DeltaRecord]:
        return compute_deltas(previous, current)
