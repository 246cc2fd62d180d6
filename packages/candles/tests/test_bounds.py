# packages/candles/tests/test_bounds.py

from __future__ import annotations

from typing import List

from loguru import logger

from packages.candles.bounds import compute_bounds, is_fully_covered
from packages.candles.types import Bound, GapAudit
from packages.common.types import Candle, Range

H = 3_600_000


def _candles_desc(ts_list: List[int]) -> List[Candle]:
    return [
        Candle(exchange="binance", symbol="BTC/USDT", timeframe="1h", ts_ms=ts,
               open=1.0, high=1.0, low=1.0, close=1.0, volume=1.0)
        for ts in sorted(ts_list, reverse=True)
    ]


def _audit(candles: List[Candle], width: int = H) -> GapAudit:
    gaps = [i for i in range(len(candles) - 1) if candles[i].ts_ms - candles[i + 1].ts_ms > width]
    return GapAudit(gaps=gaps, candles=candles)


def test_no_existing_candles_is_one_bound():
    rng = Range(start=0, end=5 * H)
    assert compute_bounds([], None, rng, H) == [Bound(start=0, end=18_000_000)]


def test_fully_covered_range_has_no_bounds():
    rng = Range(start=0, end=4 * H)
    existing = _candles_desc([0, H, 2 * H, 3 * H, 4 * H])

    assert is_fully_covered(existing, rng, H)
    assert compute_bounds(existing, None, rng, H) == []


def test_edges_present_but_hole_inside_is_not_covered():
    rng = Range(start=0, end=4 * H)
    existing = _candles_desc([0, H, 4 * H])

    assert not is_fully_covered(existing, rng, H)
    assert compute_bounds(existing, _audit(existing), rng, H) == [
        Bound(start=H + H // 2, end=4 * H - H // 2)
    ]


def test_single_internal_gap_uses_half_width_offsets():
    # candles at 0,1h,2h then 6h,7h,8h; range edges fully present
    rng = Range(start=0, end=8 * H)
    existing = _candles_desc([0, H, 2 * H, 6 * H, 7 * H, 8 * H])

    bounds = compute_bounds(existing, _audit(existing), rng, H)

    a, b = 2 * H, 6 * H
    assert bounds == [Bound(start=a + H // 2, end=b - H // 2)]
    assert all(x.start < x.end for x in bounds)


def test_start_and_end_caps():
    rng = Range(start=0, end=10 * H)
    existing = _candles_desc([4 * H, 5 * H, 6 * H])

    bounds = compute_bounds(existing, _audit(existing), rng, H)

    assert bounds == [
        Bound(start=0, end=4 * H),
        Bound(start=6 * H, end=10 * H),
    ]


def test_caps_within_one_width_are_not_fetched():
    rng = Range(start=0, end=10 * H)
    existing = _candles_desc([H, 2 * H, 9 * H])  # both deficits exactly one width

    bounds = compute_bounds(existing, _audit(existing), rng, H)

    assert bounds == [Bound(start=2 * H + H // 2, end=9 * H - H // 2)]


def test_multiple_gaps_come_back_ascending():
    rng = Range(start=0, end=20 * H)
    existing = _candles_desc([0, H, 5 * H, 6 * H, 12 * H, 20 * H])
    audit = _audit(existing)

    # auditor reports newest gap first
    assert [existing[i].ts_ms for i in audit.gaps] == [20 * H, 12 * H, 5 * H]

    bounds = compute_bounds(existing, audit, rng, H)

    assert bounds == [
        Bound(start=H + H // 2, end=5 * H - H // 2),
        Bound(start=6 * H + H // 2, end=12 * H - H // 2),
        Bound(start=12 * H + H // 2, end=20 * H - H // 2),
    ]
    assert [b.start for b in bounds] == sorted(b.start for b in bounds)


def test_unrequested_edge_buckets_are_logged():
    rng = Range(start=0, end=6 * H)
    existing = _candles_desc([H, 2 * H, 3 * H, 4 * H, 5 * H])
    messages: List[str] = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    try:
        bounds = compute_bounds(existing, _audit(existing), rng, H)
    finally:
        logger.remove(sink_id)

    assert bounds == []
    assert any(m.startswith("Start edge within one width") for m in messages)
    assert any(m.startswith("End edge within one width") for m in messages)
