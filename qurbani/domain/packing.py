# qurbani/domain/packing.py
"""
Pure packing and partitioning logic.

Operates on plain ids and (group_id, member_count) tuples only; the service
layer reads state from the store and feeds it in here.

Functions included:
- order_fullest_first
- split_contiguous
- summarize_cow_shares
"""
import math
from typing import List, Sequence, Tuple, TypeVar

COW_GROUP_SIZE = 7

T = TypeVar("T")


def order_fullest_first(groups: Sequence[Tuple[int, int]], capacity: int = COW_GROUP_SIZE) -> List[Tuple[int, int]]:
    """
    Keep only groups that still have room and order them by member count,
    highest first. Ties keep their input order (callers pass groups oldest first).

    Example:
    >>> order_fullest_first([(1, 7), (2, 3), (3, 5), (4, 5)])
    [(3, 5), (4, 5), (2, 3)]
    """
    open_groups = [(gid, count) for gid, count in groups if count < capacity]
    return sorted(open_groups, key=lambda g: -g[1])


def split_contiguous(items: Sequence[T], parts: int) -> List[List[T]]:
    """
    Cut items into `parts` contiguous slices of ceil(len/parts) items, in input order.

    Earlier parts are filled first, so the last parts may get fewer items
    or none at all (10 items over 3 parts -> 4, 4, 2).

    Example:
    >>> split_contiguous(list(range(15)), 2)
    [[0, 1, 2, 3, 4, 5, 6, 7], [8, 9, 10, 11, 12, 13, 14]]
    >>> split_contiguous([1, 2, 3, 4], 3)
    [[1, 2], [3, 4], []]
    """
    if parts < 1:
        raise ValueError("parts must be at least 1")

    per_part = math.ceil(len(items) / parts)
    return [list(items[i * per_part: (i + 1) * per_part]) for i in range(parts)]


def summarize_cow_shares(share_count: int, capacity: int = COW_GROUP_SIZE) -> Tuple[int, int]:
    """Number of whole cows and leftover shares for a count of cow shares."""
    return divmod(share_count, capacity)
