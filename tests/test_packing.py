# tests/test_packing.py
import math

import pytest

from qurbani.domain.packing import (
    COW_GROUP_SIZE, order_fullest_first, split_contiguous, summarize_cow_shares,
)

# -------------------------------
# split_contiguous
# -------------------------------

def test_split_two_agents_fifteen_items():
    slices = split_contiguous(list(range(15)), 2)
    assert slices == [list(range(8)), list(range(8, 15))]


def test_split_exact_multiple():
    slices = split_contiguous(list(range(21)), 3)
    assert [len(s) for s in slices] == [7, 7, 7]


def test_split_fills_earlier_parts_first():
    slices = split_contiguous(list(range(10)), 3)
    assert [len(s) for s in slices] == [4, 4, 2]


def test_split_can_leave_last_parts_empty():
    assert [len(s) for s in split_contiguous(list(range(4)), 3)] == [2, 2, 0]
    assert [len(s) for s in split_contiguous(list(range(7)), 5)] == [2, 2, 2, 1, 0]


def test_split_fewer_items_than_parts():
    assert split_contiguous([1, 2], 3) == [[1], [2], []]


def test_split_empty():
    assert split_contiguous([], 4) == [[], [], [], []]


def test_split_keeps_order_and_covers_everything():
    items = list(range(1, 51))
    slices = split_contiguous(items, 7)
    assert [x for s in slices for x in s] == items


@pytest.mark.parametrize("size, parts", [(0, 1), (1, 5), (7, 5), (10, 3), (15, 2), (50, 7), (99, 10)])
def test_split_sizes_are_ceil_slices(size, parts):
    sizes = [len(s) for s in split_contiguous(list(range(size)), parts)]
    per_part = math.ceil(size / parts)
    assert sum(sizes) == size
    assert len(sizes) == parts
    assert all(n <= per_part for n in sizes)
    # only the part holding the tail can be short, the rest are full or empty
    assert len([n for n in sizes if 0 < n < per_part]) <= 1
    assert sizes == sorted(sizes, reverse=True)


def test_split_rejects_zero_parts():
    with pytest.raises(ValueError):
        split_contiguous([1, 2, 3], 0)


def test_split_keeps_tuples_whole():
    groups = [(1, [1, 2]), (2, [3, 4]), (3, [5, 6])]
    assert split_contiguous(groups, 2) == [[(1, [1, 2]), (2, [3, 4])], [(3, [5, 6])]]

# -------------------------------
# Fullest-first selection
# -------------------------------

def test_order_fullest_first_drops_full_groups():
    groups = [(1, 7), (2, 3), (3, 5), (4, 5), (5, 0)]
    assert order_fullest_first(groups) == [(3, 5), (4, 5), (2, 3), (5, 0)]


def test_order_fullest_first_prefers_fullest():
    assert order_fullest_first([(1, 2), (2, 6), (3, 4)])[0] == (2, 6)


def test_order_fullest_first_tie_keeps_oldest():
    assert order_fullest_first([(10, 4), (11, 4)]) == [(10, 4), (11, 4)]


def test_order_fullest_first_empty_when_all_full():
    assert order_fullest_first([(1, COW_GROUP_SIZE), (2, COW_GROUP_SIZE)]) == []
    assert order_fullest_first([]) == []

# -------------------------------
# Dashboard helper
# -------------------------------

def test_summarize_cow_shares():
    assert summarize_cow_shares(0) == (0, 0)
    assert summarize_cow_shares(15) == (2, 1)
    assert summarize_cow_shares(14) == (2, 0)
