from __future__ import annotations

from typing import Sequence

from loguru import logger

from packages.common.errors import UpsertError
from packages.common.types import Candle, Market
from packages.candles.types import CandleStore, KlineRecord


def to_candle(market: Market, r: KlineRecord) -> Candle:
    return Candle(
        exchange=market.exchange,
        symbol=market.symbol,
        timeframe=market.timeframe,
        ts_ms=int(r.open_time),
        open=float(r.open),
        high=float(r.high),
        low=float(r.low),
        close=float(r.close),
        volume=float(r.volume),
    )


class UpsertPipeline:
    def __init__(self, store: CandleStore):
        self._store = store

    async def persist(self, market: Market, records: Sequence[KlineRecord]) -> int:
        """
        Upsert one fetched window, oldest first. Stops at the first failure;
        a malformed record rejects the window before anything is written.

        Returns the number of candles written.
        """
        candles: list[Candle] = []
        for r in records:
            try:
                candles.append(to_candle(market, r))
            except (TypeError, ValueError) as e:
                key = f"{market.exchange}-{market.symbol}-{market.timeframe}-{r.open_time}"
                raise UpsertError(key, written=0) from e

        wrote = 0
        for candle in sorted(candles, key=lambda c: c.ts_ms):
            try:
                await self._store.upsert(candle)
            except Exception as e:
                raise UpsertError(candle.key, written=wrote) from e
            wrote += 1

        logger.debug("Saved {} candles {}", wrote, market)
        return wrote
