from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Market:
    """One candle series, e.g. binance/spot/BTC/USDT/1h."""

    exchange: str
    type: str
    symbol: str  # canonical "BTC/USDT"
    timeframe: str

    def __str__(self) -> str:
        return f"{self.exchange}:{self.type}:{self.symbol}:{self.timeframe}"


@dataclass(frozen=True)
class Range:
    start: int  # ms epoch, inclusive
    end: int    # ms epoch, inclusive

    def normalized(self) -> "Range":
        if self.start > self.end:
            return Range(start=self.end, end=self.start)
        return self

    @property
    def span(self) -> int:
        return self.end - self.start

    def __str__(self) -> str:
        return f"[{self.start}..{self.end}]"


@dataclass(frozen=True)
class Candle:
    exchange: str
    symbol: str
    timeframe: str
    ts_ms: int  # bucket open time
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def key(self) -> str:
        return f"{self.exchange}-{self.symbol}-{self.timeframe}-{self.ts_ms}"
