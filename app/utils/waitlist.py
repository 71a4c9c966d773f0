# app/utils/waitlist.py
"""
Invitation candidate selection.

`select_candidates` is a pure function: given the eligible pool, the batch
size and the current seat numbers it returns who to invite next. It holds no
state, so running it twice over the same pool gives the same answer.
"""

from datetime import datetime
from typing import Any, Callable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")


def default_ordering_key(candidate: Any) -> Tuple[int, datetime, str]:
    """
    Priority ascending (manual overrides are negative), then earliest joiner,
    then id so that equal timestamps still sort the same way every time.
    """
    return (candidate.priority, candidate.joined_at, candidate.id)


def slots_to_fill(batch_size: int, capacity: int, occupied: int) -> int:
    return max(0, min(batch_size, capacity - occupied))


def select_candidates(
    pool: Sequence[T],
    batch_size: int,
    capacity: int,
    occupied: int,
    key: Callable[[T], Any] = default_ordering_key,
) -> List[T]:
    """
    Return the first min(batch_size, capacity - occupied) candidates of
    `pool` in `key` order. The pool must already be filtered for eligibility.

    Example:
        >>> select_candidates(pool, batch_size=2, capacity=2, occupied=0)
        [<first>, <second>]
    """
    n = slots_to_fill(batch_size, capacity, occupied)
    if n == 0 or not pool:
        return []
    return sorted(pool, key=key)[:n]
