# packages/candles/tests/test_consolidate.py

from __future__ import annotations

import pytest

from packages.candles.consolidate import bucket_count, consolidate_bounds
from packages.candles.types import Bound

W = 60_000
CAP = 1000


def _buckets(bounds):
    return [bucket_count(b.start, b.end, W) for b in bounds]


def test_2500_missing_buckets_split_1000_1000_500():
    out = consolidate_bounds([Bound(start=0, end=2499 * W)], fetch_limit=CAP, width=W)

    assert _buckets(out) == [1000, 1000, 500]
    assert [b.start for b in out] == [0, 1000 * W, 2000 * W]
    assert out[-1].end == 2499 * W
    assert all(b.end - b.start <= CAP * W for b in out)
    # no bucket falls between two chunks
    for prev, nxt in zip(out, out[1:]):
        assert nxt.start == prev.end + W


def test_window_of_exactly_cap_widths_is_split_to_keep_end_bucket():
    # [0..1000W] holds 1001 bucket open times; one page returns only 1000
    out = consolidate_bounds([Bound(start=0, end=CAP * W)], fetch_limit=CAP, width=W)

    assert out == [
        Bound(start=0, end=(CAP - 1) * W),
        Bound(start=(CAP - 1) * W + 1, end=CAP * W),
    ]
    assert _buckets(out) == [CAP, 1]
    assert all(b.start < b.end for b in out)


def test_small_limit_windows_hold_at_most_limit_buckets():
    out = consolidate_bounds([Bound(start=0, end=4 * W)], fetch_limit=4, width=W)

    assert out == [Bound(start=0, end=3 * W), Bound(start=3 * W + 1, end=4 * W)]


def test_unaligned_group_is_cut_on_bucket_boundaries():
    out = consolidate_bounds([Bound(start=W // 2, end=4 * W + W // 2)], fetch_limit=3, width=W)

    assert out == [Bound(start=W // 2, end=3 * W), Bound(start=4 * W, end=4 * W + W // 2)]
    assert _buckets(out) == [3, 1]


def test_small_neighbouring_bounds_merge_into_one_request():
    bounds = [
        Bound(start=10 * W, end=20 * W),
        Bound(start=30 * W, end=40 * W),
        Bound(start=100 * W, end=110 * W),
    ]
    assert consolidate_bounds(bounds, fetch_limit=CAP, width=W) == [Bound(start=10 * W, end=110 * W)]


def test_far_apart_bounds_are_not_bridged():
    bounds = [
        Bound(start=0, end=10 * W),
        Bound(start=5000 * W, end=5010 * W),
    ]
    assert consolidate_bounds(bounds, fetch_limit=CAP, width=W) == bounds


def test_consecutive_oversized_gaps_never_invert():
    bounds = [
        Bound(start=0, end=1500 * W),
        Bound(start=1600 * W, end=4100 * W),
        Bound(start=4200 * W, end=4300 * W),
        Bound(start=9000 * W, end=11_500 * W),
    ]
    out = consolidate_bounds(bounds, fetch_limit=CAP, width=W)

    assert all(b.start <= b.end for b in out)
    assert all(b.end - b.start <= CAP * W for b in out)
    assert all(n <= CAP for n in _buckets(out))
    assert [b.start for b in out] == sorted(b.start for b in out)

    # every requested millisecond is inside some output window
    for b in bounds:
        for t in range(b.start, b.end + 1, W):
            assert any(o.start <= t <= o.end for o in out)


def test_unsorted_and_inverted_input_is_normalized():
    bounds = [
        Bound(start=300 * W, end=200 * W),
        Bound(start=0, end=50 * W),
    ]
    out = consolidate_bounds(bounds, fetch_limit=CAP, width=W)
    assert out == [Bound(start=0, end=300 * W)]


def test_overlapping_inputs_do_not_refetch_covered_part():
    bounds = [
        Bound(start=0, end=900 * W),
        Bound(start=500 * W, end=2000 * W),
    ]
    out = consolidate_bounds(bounds, fetch_limit=CAP, width=W)

    assert out == [
        Bound(start=0, end=900 * W),
        Bound(start=900 * W, end=1899 * W),
        Bound(start=1900 * W, end=2000 * W),
    ]


def test_empty_input():
    assert consolidate_bounds([], fetch_limit=CAP, width=W) == []


def test_rejects_non_positive_limits():
    with pytest.raises(ValueError):
        consolidate_bounds([Bound(start=0, end=W)], fetch_limit=0, width=W)
    with pytest.raises(ValueError):
        consolidate_bounds([Bound(start=0, end=W)], fetch_limit=CAP, width=0)
