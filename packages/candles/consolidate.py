from __future__ import annotations

from typing import Sequence

from packages.candles.types import Bound


def _first_bucket(ts: int, width: int) -> int:
    return -(-ts // width) * width


def _last_bucket(ts: int, width: int) -> int:
    return (ts // width) * width


def bucket_count(start: int, end: int, width: int) -> int:
    """Bucket open times inside [start..end], both ends inclusive."""
    n = (_last_bucket(end, width) - _first_bucket(start, width)) // width + 1
    return max(n, 0)


def _group(bounds: Sequence[Bound], fetch_limit: int, width: int) -> list[Bound]:
    """
    Pass 1: absorb neighbouring bounds into one request window while the
    window holds at most fetch_limit bucket open times.

    Returns fresh groups; a single oversized bound stays one (oversized) group.
    """
    ordered = sorted((b.normalized() for b in bounds), key=lambda b: (b.start, b.end))

    groups: list[Bound] = []
    cur_start: int | None = None
    cur_end = 0

    for b in ordered:
        if cur_start is None:
            cur_start, cur_end = b.start, b.end
            continue

        if b.end <= cur_end:
            continue  # already inside the current group

        if bucket_count(cur_start, b.end, width) <= fetch_limit:
            cur_end = b.end
            continue

        groups.append(Bound(start=cur_start, end=cur_end))
        # overlapping inputs must not re-request what the previous group covers
        cur_start, cur_end = max(b.start, cur_end), b.end

    if cur_start is not None:
        groups.append(Bound(start=cur_start, end=cur_end))

    return groups


def _split(group: Bound, fetch_limit: int, width: int) -> list[Bound]:
    """
    Pass 2: cut a group into windows of at most fetch_limit bucket open times.

    The remote end time is inclusive and a page holds fetch_limit rows, so a
    window with one bucket more would silently lose its last bucket.
    """
    if bucket_count(group.start, group.end, width) <= fetch_limit:
        return [group]

    chunk_ms = fetch_limit * width
    first = _first_bucket(group.start, width)
    last = _last_bucket(group.end, width)

    out: list[Bound] = []
    start = group.start
    cursor = first
    while cursor <= last:
        chunk_last = cursor + chunk_ms - width
        if chunk_last >= last:
            end = group.end
        else:
            end = chunk_last

        if start == end and out:
            # a lone bucket at the group end; start == end is rejected remotely
            start = out[-1].end + 1

        out.append(Bound(start=start, end=end))
        cursor += chunk_ms
        start = cursor

    return out


def consolidate_bounds(bounds: Sequence[Bound], *, fetch_limit: int, width: int) -> list[Bound]:
    """
    Merge/split fetch windows so each holds at most fetch_limit bucket open
    times. Bounds with ends on the grid or half a width off it therefore
    come out spanning at most fetch_limit * width ms.

    Output is ascending, non-overlapping except where overlapping inputs met,
    and every window has start <= end.
    """
    if fetch_limit <= 0:
        raise ValueError(f"fetch_limit must be positive (got {fetch_limit})")
    if width <= 0:
        raise ValueError(f"width must be positive (got {width})")

    out: list[Bound] = []
    for g in _group(bounds, fetch_limit, width):
        out.extend(_split(g, fetch_limit, width))
    return out
