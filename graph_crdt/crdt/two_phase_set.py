"""
Graph CRDT Two-Phase Set

An add-set and a remove-set (tombstones), each keyed by identifier and
holding the payload plus the timestamp of the operation that wrote it.

Merge is a per-key timestamp join applied to each half independently.
Commutative, associative and idempotent as long as no two replicas write
the same key at exactly the same timestamp; on a tie the receiver keeps
its own record.

An element is visible when it has an add record and no remove record
strictly later than it (add wins ties, a later re-add resurrects).
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional
from uuid import UUID

from graph_crdt.crdt.clock import Clock, HLCTimestamp, wall_clock


class NotObservedError(LookupError):
    """Tombstone requested for an id this replica never saw added."""

    def __init__(self, element_id: UUID):
        super().__init__(f"element {element_id} was never added")
        self.element_id = element_id


@dataclass(frozen=True)
class TimestampedValue:
    """A payload stamped with the time its operation was issued."""
    payload: Any
    timestamp: Any


Records = dict[UUID, TimestampedValue]


def merge_sets(receiver: Records, other: Mapping[UUID, TimestampedValue]) -> Records:
    """Join `other` into `receiver` key by key. Strictly later wins."""
    for key, incoming in other.items():
        current = receiver.get(key)
        if current is None or current.timestamp < incoming.timestamp:
            receiver[key] = incoming
    return receiver


def survives(add: TimestampedValue, remove: Optional[TimestampedValue]) -> bool:
    """Add-wins visibility rule for one element."""
    return remove is None or not (add.timestamp < remove.timestamp)


def timestamp_kind(timestamp: Any) -> str:
    """Kind of clock that issued a timestamp: hlc readings or plain wall values."""
    return "hlc" if isinstance(timestamp, HLCTimestamp) else "wall"


def timestamp_kinds(*record_maps: Mapping[UUID, TimestampedValue]) -> set[str]:
    return {timestamp_kind(record.timestamp)
            for records in record_maps for record in records.values()}


def check_same_kind(kinds: set[str]) -> None:
    """Raise TypeError if records from different clock kinds would meet."""
    if len(kinds) > 1:
        raise TypeError(
            f"cannot merge records stamped by different clock kinds: {sorted(kinds)}")


class TwoPhaseSet:
    """Replicated set of identifiers with tombstones.

    Used for: graph nodes (payload = node bytes) and graph edges
    (payload = the Edge value).
    """

    def __init__(self, clock: Clock = wall_clock):
        self._clock = clock
        self._add_set: Records = {}
        self._remove_set: Records = {}

    def add(self, element_id: UUID, payload: Any) -> None:
        """Record an add. Overwrites any earlier add record for the id."""
        self._add_set[element_id] = TimestampedValue(payload, self._clock())

    def remove(self, element_id: UUID) -> None:
        """Record a tombstone carrying the add record's payload.

        Raises NotObservedError if the id has no add record here.
        """
        added = self._add_set.get(element_id)
        if added is None:
            raise NotObservedError(element_id)
        self._remove_set[element_id] = TimestampedValue(added.payload, self._clock())

    def merge(self, other: 'TwoPhaseSet') -> 'TwoPhaseSet':
        """Merge another replica's records into this one, in place.

        Raises TypeError, leaving this set untouched, if the two sets
        hold timestamps from different clock kinds.
        """
        check_same_kind(self.timestamp_kinds() | other.timestamp_kinds())
        merge_sets(self._add_set, other.get_add_set())
        merge_sets(self._remove_set, other.get_remove_set())
        return self

    def get_add_set(self) -> Mapping[UUID, TimestampedValue]:
        return MappingProxyType(dict(self._add_set))

    def get_remove_set(self) -> Mapping[UUID, TimestampedValue]:
        return MappingProxyType(dict(self._remove_set))

    def lookup(self, element_id: UUID) -> bool:
        """Is the element visible under the add-wins rule."""
        added = self._add_set.get(element_id)
        if added is None:
            return False
        return survives(added, self._remove_set.get(element_id))

    def elements(self) -> Iterator[UUID]:
        """Ids of the visible elements."""
        for element_id, _ in self.items():
            yield element_id

    def items(self) -> Iterator[tuple[UUID, TimestampedValue]]:
        """Visible elements with their winning add records."""
        for element_id, added in self._add_set.items():
            if survives(added, self._remove_set.get(element_id)):
                yield element_id, added

    def timestamp_kinds(self) -> set[str]:
        return timestamp_kinds(self._add_set, self._remove_set)

    def copy(self) -> 'TwoPhaseSet':
        clone = TwoPhaseSet(self._clock)
        clone._add_set = dict(self._add_set)
        clone._remove_set = dict(self._remove_set)
        return clone

    def __contains__(self, element_id: UUID) -> bool:
        return self.lookup(element_id)

    def __len__(self) -> int:
        return sum(1 for _ in self.elements())

    def __eq__(self, other) -> bool:
        if not isinstance(other, TwoPhaseSet):
            return False
        return (self._add_set == other._add_set
                and self._remove_set == other._remove_set)
