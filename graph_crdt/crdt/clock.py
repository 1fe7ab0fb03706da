"""
Graph CRDT Timestamp Sources

Every add and remove record carries a timestamp. The merge only needs
the timestamps to be totally ordered, so any callable returning
comparable values works as a clock.

Two sources ship here:
  - wall_clock: integer nanoseconds since the epoch (the default)
  - HybridLogicalClock: (wall, logical, replica) triples that never
    run backwards on one replica and never tie across replicas
"""

import time
from dataclasses import dataclass
from typing import Any, Callable


Clock = Callable[[], Any]


def wall_clock() -> int:
    """Current UTC wall-clock time in nanoseconds."""
    return time.time_ns()


# ============================================================
# Hybrid Logical Clock
# ============================================================

@dataclass(frozen=True, order=True)
class HLCTimestamp:
    """A hybrid logical clock reading.

    Ordered by wall time, then logical counter, then replica id. The
    replica id makes two readings from different replicas unequal.
    """
    wall: int
    logical: int = 0
    replica: str = ""

    def __str__(self) -> str:
        return f"{self.wall}.{self.logical}@{self.replica}"


class HybridLogicalClock:
    """Per-replica monotonic clock.

    Tracks the physical clock where possible and falls back to a
    logical counter when the physical clock stalls or runs behind a
    timestamp already observed from another replica.
    """

    def __init__(self, replica_id: str,
                 physical: Callable[[], int] = wall_clock):
        self.replica_id = replica_id
        self._physical = physical
        self._wall = 0
        self._logical = 0

    def now(self) -> HLCTimestamp:
        """Issue a new timestamp strictly after every earlier one."""
        pt = self._physical()
        if pt > self._wall:
            self._wall = pt
            self._logical = 0
        else:
            self._logical += 1
        return HLCTimestamp(self._wall, self._logical, self.replica_id)

    __call__ = now

    def observe(self, remote: HLCTimestamp) -> None:
        """Advance past a timestamp received from another replica."""
        if remote.wall > self._wall:
            self._wall = remote.wall
            self._logical = remote.logical
        elif remote.wall == self._wall:
            self._logical = max(self._logical, remote.logical)

    @property
    def last(self) -> HLCTimestamp:
        return HLCTimestamp(self._wall, self._logical, self.replica_id)
