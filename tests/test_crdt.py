"""Tests for timestamp sources and the two-phase set."""

import itertools
import uuid

import pytest

from graph_crdt.crdt.clock import HLCTimestamp, HybridLogicalClock, wall_clock
from graph_crdt.crdt.two_phase_set import (
    NotObservedError, TimestampedValue, TwoPhaseSet, merge_sets,
)


def ticker(start: int = 1):
    return itertools.count(start).__next__


# ============================================================
# Clock Tests
# ============================================================

def test_wall_clock_nanoseconds():
    a = wall_clock()
    b = wall_clock()
    assert isinstance(a, int)
    assert b >= a
    print("  ✓ wall_clock_nanoseconds")

def test_hlc_monotonic_when_physical_stalls():
    clock = HybridLogicalClock("r1", physical=lambda: 100)
    a, b, c = clock(), clock(), clock()
    assert a < b < c
    assert (a.wall, a.logical) == (100, 0)
    assert (c.wall, c.logical) == (100, 2)
    print("  ✓ hlc_monotonic_when_physical_stalls")

def test_hlc_tracks_physical_time():
    physical = ticker(500)
    clock = HybridLogicalClock("r1", physical=physical)
    a = clock()
    b = clock()
    assert b.wall > a.wall
    assert b.logical == 0
    print("  ✓ hlc_tracks_physical_time")

def test_hlc_replica_tiebreak():
    """Same wall and logical time on two replicas never tie."""
    a = HybridLogicalClock("alice", physical=lambda: 100)()
    b = HybridLogicalClock("bob", physical=lambda: 100)()
    assert a != b
    assert a < b  # alice < bob lexicographically
    print("  ✓ hlc_replica_tiebreak")

def test_hlc_observe_remote():
    clock = HybridLogicalClock("r1", physical=lambda: 100)
    clock.observe(HLCTimestamp(wall=900, logical=4, replica="r2"))
    issued = clock()
    assert issued > HLCTimestamp(wall=900, logical=4, replica="r2")
    assert (issued.wall, issued.logical) == (900, 5)
    print("  ✓ hlc_observe_remote")

def test_hlc_observe_older_ignored():
    clock = HybridLogicalClock("r1", physical=lambda: 100)
    clock()
    clock.observe(HLCTimestamp(wall=50, logical=9, replica="r2"))
    assert clock.last == HLCTimestamp(100, 0, "r1")
    print("  ✓ hlc_observe_older_ignored")


# ============================================================
# Two-Phase Set Tests
# ============================================================

def test_add_records_payload_and_timestamp():
    s = TwoPhaseSet(clock=ticker())
    x = uuid.uuid4()
    s.add(x, b"hello")
    assert s.get_add_set()[x] == TimestampedValue(b"hello", 1)
    assert x in s
    assert len(s) == 1
    print("  ✓ add_records_payload_and_timestamp")

def test_add_overwrites():
    s = TwoPhaseSet(clock=ticker())
    x = uuid.uuid4()
    s.add(x, b"hello")
    s.add(x, b"world")
    assert s.get_add_set()[x] == TimestampedValue(b"world", 2)
    assert len(s.get_add_set()) == 1
    print("  ✓ add_overwrites")

def test_remove_unobserved_raises():
    s = TwoPhaseSet(clock=ticker())
    x = uuid.uuid4()
    with pytest.raises(NotObservedError) as info:
        s.remove(x)
    assert info.value.element_id == x
    assert len(s.get_remove_set()) == 0
    print("  ✓ remove_unobserved_raises")

def test_remove_copies_add_payload():
    s = TwoPhaseSet(clock=ticker())
    x = uuid.uuid4()
    s.add(x, b"hello")
    s.remove(x)
    assert s.get_remove_set()[x] == TimestampedValue(b"hello", 2)
    assert x not in s
    assert s.lookup(x) is False
    print("  ✓ remove_copies_add_payload")

def test_readd_resurrects():
    s = TwoPhaseSet(clock=ticker())
    x = uuid.uuid4()
    s.add(x, b"v1")
    s.remove(x)
    s.add(x, b"v2")
    assert x in s
    assert dict(s.items())[x].payload == b"v2"
    assert list(s.elements()) == [x]
    print("  ✓ readd_resurrects")

def test_tie_favors_add():
    s = TwoPhaseSet(clock=lambda: 7)
    x = uuid.uuid4()
    s.add(x, b"same instant")
    s.remove(x)
    assert x in s
    print("  ✓ tie_favors_add")

def test_snapshots_are_read_only():
    s = TwoPhaseSet(clock=ticker())
    x = uuid.uuid4()
    s.add(x, b"hello")
    snapshot = s.get_add_set()
    with pytest.raises(TypeError):
        snapshot[uuid.uuid4()] = TimestampedValue(b"", 0)
    s.add(uuid.uuid4(), b"later")
    assert len(snapshot) == 1
    print("  ✓ snapshots_are_read_only")

def test_merge_later_wins():
    clock = ticker()
    a = TwoPhaseSet(clock)
    b = TwoPhaseSet(clock)
    x = uuid.uuid4()
    a.add(x, b"hello")
    b.add(x, b"world")
    a.merge(b)
    assert a.get_add_set()[x].payload == b"world"
    b.merge(a)
    assert b.get_add_set()[x].payload == b"world"
    assert a == b
    print("  ✓ merge_later_wins")

def test_merge_union_of_both_halves():
    clock = ticker()
    a = TwoPhaseSet(clock)
    b = TwoPhaseSet(clock)
    x, y = uuid.uuid4(), uuid.uuid4()
    a.add(x, b"x")
    b.add(y, b"y")
    b.remove(y)
    a.merge(b)
    assert set(a.get_add_set()) == {x, y}
    assert set(a.get_remove_set()) == {y}
    assert list(a.elements()) == [x]
    assert [eid for eid, _ in a.items()] == [x]
    print("  ✓ merge_union_of_both_halves")

def test_merge_tie_keeps_receiver():
    a = TwoPhaseSet(clock=lambda: 5)
    b = TwoPhaseSet(clock=lambda: 5)
    x = uuid.uuid4()
    a.add(x, b"mine")
    b.add(x, b"theirs")
    a.merge(b)
    assert a.get_add_set()[x].payload == b"mine"
    b.merge(a)
    assert b.get_add_set()[x].payload == b"theirs"
    print("  ✓ merge_tie_keeps_receiver")

def test_merge_idempotent():
    clock = ticker()
    a = TwoPhaseSet(clock)
    x = uuid.uuid4()
    a.add(x, b"x")
    a.remove(x)
    before = a.copy()
    a.merge(a)
    a.merge(before)
    assert a == before
    print("  ✓ merge_idempotent")

def test_merge_sets_helper():
    x = uuid.uuid4()
    receiver = {x: TimestampedValue(b"old", 1)}
    merged = merge_sets(receiver, {x: TimestampedValue(b"new", 2)})
    assert merged is receiver
    assert receiver[x].payload == b"new"
    merge_sets(receiver, {x: TimestampedValue(b"older", 0)})
    assert receiver[x].payload == b"new"
    print("  ✓ merge_sets_helper")

def test_hlc_timestamps_in_set():
    a = TwoPhaseSet(HybridLogicalClock("alice", physical=lambda: 100))
    b = TwoPhaseSet(HybridLogicalClock("bob", physical=lambda: 100))
    x = uuid.uuid4()
    a.add(x, b"alice")
    b.add(x, b"bob")
    a.merge(b)
    b.merge(a)
    # same wall time, replica id decides in both directions
    assert a == b
    assert a.get_add_set()[x].payload == b"bob"
    print("  ✓ hlc_timestamps_in_set")

def test_merge_mixed_clock_kinds_rejected():
    a = TwoPhaseSet(HybridLogicalClock("alice", physical=lambda: 100))
    b = TwoPhaseSet(clock=ticker())
    x, y = uuid.uuid4(), uuid.uuid4()
    a.add(x, b"hlc")
    b.add(y, b"wall")
    b.remove(y)
    before = a.copy()
    with pytest.raises(TypeError):
        a.merge(b)
    assert a == before
    assert y not in a.get_add_set()
    assert y not in a.get_remove_set()
    print("  ✓ merge_mixed_clock_kinds_rejected")


if __name__ == "__main__":
    print("Testing CRDT primitives...\n")

    print("Clocks:")
    test_wall_clock_nanoseconds()
    test_hlc_monotonic_when_physical_stalls()
    test_hlc_tracks_physical_time()
    test_hlc_replica_tiebreak()
    test_hlc_observe_remote()
    test_hlc_observe_older_ignored()

    print("\nTwo-Phase Set:")
    test_add_records_payload_and_timestamp()
    test_add_overwrites()
    test_remove_unobserved_raises()
    test_remove_copies_add_payload()
    test_readd_resurrects()
    test_tie_favors_add()
    test_snapshots_are_read_only()
    test_merge_later_wins()
    test_merge_union_of_both_halves()
    test_merge_tie_keeps_receiver()
    test_merge_idempotent()
    test_merge_sets_helper()
    test_hlc_timestamps_in_set()
    test_merge_mixed_clock_kinds_rejected()

    print("\n" + "=" * 50)
    print("ALL CRDT TESTS PASSED ✓")
    print("=" * 50)
