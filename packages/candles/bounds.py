from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger

from packages.common.types import Candle, Range
from packages.candles.types import Bound, GapAudit


def expected_bucket_count(rng: Range, width: int) -> int:
    return (rng.end - rng.start) // width + 1


def is_fully_covered(existing: Sequence[Candle], rng: Range, width: int) -> bool:
    """
    existing is descending by ts_ms.

    Both edges must be present, and the count must match the bucket count of
    [start..end]; an edge match alone says nothing about internal holes.
    """
    if not existing:
        return False
    if existing[0].ts_ms != rng.end or existing[-1].ts_ms != rng.start:
        return False
    return len(existing) >= expected_bucket_count(rng, width)


def compute_bounds(
    existing: Sequence[Candle],
    audit: Optional[GapAudit],
    rng: Range,
    width: int,
) -> list[Bound]:
    """
    Windows that need a remote fetch, sorted ascending by start.

    An empty result means [start..end] is already covered.
    """
    if not existing:
        return [Bound(start=rng.start, end=rng.end)]

    if is_fully_covered(existing, rng, width):
        return []

    newest = existing[0].ts_ms
    oldest = existing[-1].ts_ms
    half = width // 2

    out: list[Bound] = []

    if oldest - rng.start > width:
        out.append(Bound(start=rng.start, end=oldest))
    elif oldest > rng.start:
        logger.debug("Start edge within one width, not requested: {} < {}", rng.start, oldest)

    if audit is not None:
        candles = audit.candles
        for i in audit.gaps:
            if i < 0 or i + 1 >= len(candles):
                raise IndexError(f"gap index {i} out of range for {len(candles)} audited candles")

            # Half a bucket in from each bordering candle: we already hold both
            # edges, and start == end is rejected by the remote API.
            older = candles[i + 1].ts_ms
            newer = candles[i].ts_ms
            out.append(Bound(start=older + half, end=newer - half))

    if rng.end - newest > width:
        out.append(Bound(start=newest, end=rng.end))
    elif rng.end > newest:
        logger.debug("End edge within one width, not requested: {} > {}", rng.end, newest)

    out.sort(key=lambda b: (b.start, b.end))
    return out
