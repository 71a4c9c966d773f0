from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from app.utils.waitlist import default_ordering_key, select_candidates, slots_to_fill

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _candidate(id, priority=0, minutes=0):
    return SimpleNamespace(id=id, priority=priority, joined_at=T0 + timedelta(minutes=minutes))


def test_slots_to_fill_is_bounded_by_batch_and_free_seats():
    assert slots_to_fill(batch_size=2, capacity=10, occupied=0) == 2
    assert slots_to_fill(batch_size=5, capacity=10, occupied=8) == 2
    assert slots_to_fill(batch_size=5, capacity=10, occupied=10) == 0
    assert slots_to_fill(batch_size=5, capacity=10, occupied=12) == 0


def test_select_candidates_orders_by_priority_then_join_time():
    pool = [
        _candidate("c", minutes=3),
        _candidate("a", minutes=1),
        _candidate("vip", priority=-1, minutes=10),
        _candidate("b", minutes=2),
    ]

    selected = select_candidates(pool, batch_size=3, capacity=10, occupied=0)

    assert [c.id for c in selected] == ["vip", "a", "b"]


def test_select_candidates_breaks_ties_on_id():
    pool = [_candidate("z"), _candidate("m"), _candidate("a")]

    selected = select_candidates(pool, batch_size=2, capacity=2, occupied=0)

    assert [c.id for c in selected] == ["a", "m"]


def test_select_candidates_never_exceeds_free_seats():
    pool = [_candidate(str(i), minutes=i) for i in range(5)]

    assert len(select_candidates(pool, batch_size=5, capacity=3, occupied=2)) == 1
    assert select_candidates(pool, batch_size=5, capacity=3, occupied=3) == []


def test_select_candidates_empty_pool():
    assert select_candidates([], batch_size=2, capacity=2, occupied=0) == []


def test_select_candidates_is_deterministic_and_does_not_mutate_pool():
    pool = [_candidate("b", minutes=2), _candidate("a", minutes=1)]

    first = select_candidates(pool, batch_size=1, capacity=5, occupied=0)
    second = select_candidates(pool, batch_size=1, capacity=5, occupied=0)

    assert first == second
    assert [c.id for c in pool] == ["b", "a"]


def test_select_candidates_accepts_custom_ordering_key():
    pool = [_candidate("a", minutes=1), _candidate("b", minutes=2)]

    latest_first = select_candidates(
        pool, batch_size=1, capacity=5, occupied=0, key=lambda c: -c.joined_at.timestamp()
    )

    assert [c.id for c in latest_first] == ["b"]


def test_default_ordering_key():
    candidate = _candidate("x", priority=2, minutes=5)
    assert default_ordering_key(candidate) == (2, T0 + timedelta(minutes=5), "x")
