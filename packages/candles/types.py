from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence, Tuple, Union

from packages.common.types import Candle, Market, Range

# A Range slated for exactly one remote request.
Bound = Range

Numeric = Union[str, float, int]
Filter = Tuple[str, str, object]  # (column, op, value)


@dataclass(frozen=True)
class KlineRecord:
    """Raw remote row. Prices may arrive as text; the upsert pipeline coerces."""

    open_time: int
    open: Numeric
    high: Numeric
    low: Numeric
    close: Numeric
    volume: Numeric


@dataclass(frozen=True)
class GapAudit:
    # candles are descending by ts_ms; gaps[i] marks a hole between
    # candles[i] and candles[i + 1]
    gaps: Sequence[int] = field(default_factory=list)
    candles: Sequence[Candle] = field(default_factory=list)


class CandleStore(Protocol):
    async def get_in_range(
        self,
        filters: Sequence[Filter],
        *,
        key: str = "ts_ms",
        start: int,
        end: int,
        order_by: str = "ts_ms",
        order_direction: str = "desc",
    ) -> list[Candle]:
        ...

    async def audit_gaps(self, market: Market, start: int, end: int) -> GapAudit:
        ...

    async def upsert(self, candle: Candle) -> None:
        """Insert or replace by (exchange, symbol, timeframe, ts_ms)."""
        ...


class MarketDataClient(Protocol):
    async def fetch_candles(
        self,
        *,
        symbol: str,
        interval: str,
        limit: int,
        start_time: int,
        end_time: int,
    ) -> list[KlineRecord]:
        """Return rows sorted ascending by open_time."""
        ...
