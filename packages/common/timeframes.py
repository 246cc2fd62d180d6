from __future__ import annotations

import re

_TIMEFRAME_RE = re.compile(r"^(\d+)([smhdwM])$")

# "M" is a calendar month on Binance; widths are fixed, so treat it as 30 days.
_UNIT_MS = {
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
    "w": 604_800_000,
    "M": 2_592_000_000,
}


def timeframe_to_ms(tf: str) -> int:
    m = _TIMEFRAME_RE.match(tf.strip())
    if not m:
        raise ValueError(f"Invalid timeframe: {tf!r} (expected e.g. '1m', '5m', '1h', '1d')")

    n = int(m.group(1))
    if n <= 0:
        raise ValueError(f"Invalid timeframe: {tf!r} (count must be positive)")

    return n * _UNIT_MS[m.group(2)]


def floor_ts_to_tf(ts_ms: int, tf: str) -> int:
    ms = timeframe_to_ms(tf)
    return (ts_ms // ms) * ms


def ceil_ts_to_tf(ts_ms: int, tf: str) -> int:
    ms = timeframe_to_ms(tf)
    if ts_ms % ms == 0:
        return ts_ms
    return ((ts_ms // ms) + 1) * ms
