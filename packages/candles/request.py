from __future__ import annotations

from packages.common.config import normalize_symbol
from packages.common.errors import UnsupportedRangeError
from packages.common.timeframes import ceil_ts_to_tf, floor_ts_to_tf
from packages.common.types import Market, Range


def validate_sync_request(market: Market, start_ms: int, end_ms: int) -> tuple[Market, Range]:
    """
    Caller-side checks before CandleRangeSync.sync().

    Returns the market with a canonical symbol and the range snapped inward to
    bucket open times. Raises UnsupportedRangeError on anything malformed.
    """
    if not market.exchange or not market.type:
        raise UnsupportedRangeError(f"market must name an exchange and a type (got {market!r})")

    try:
        symbol = normalize_symbol(market.symbol)
        start = ceil_ts_to_tf(int(start_ms), market.timeframe)
        end = floor_ts_to_tf(int(end_ms), market.timeframe)
    except ValueError as e:
        raise UnsupportedRangeError(str(e)) from e

    if start_ms < 0 or end_ms < 0:
        raise UnsupportedRangeError(f"negative timestamps are not supported (start={start_ms} end={end_ms})")
    if end_ms < start_ms:
        raise UnsupportedRangeError(f"end < start (start={start_ms} end={end_ms})")
    if end < start:
        raise UnsupportedRangeError(
            f"range [{start_ms}..{end_ms}] holds no {market.timeframe} bucket open time"
        )

    m = Market(exchange=market.exchange, type=market.type, symbol=symbol, timeframe=market.timeframe)
    return m, Range(start=start, end=end)
