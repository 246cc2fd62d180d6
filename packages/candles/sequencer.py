from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from packages.common.errors import RemoteFetchError
from packages.common.types import Market
from packages.candles.limiter import TokenBucketLimiter
from packages.candles.types import Bound, KlineRecord, MarketDataClient


@dataclass(frozen=True)
class FetchedWindow:
    index: int
    bound: Bound
    records: list[KlineRecord]


class FetchSequencer:
    """
    One remote request per window. Callers await each window before issuing
    the next; the limiter is the only thing shared between invocations.
    """

    def __init__(self, client: MarketDataClient, limiter: TokenBucketLimiter, *, fetch_limit: int = 1000):
        self._client = client
        self._limiter = limiter
        self.fetch_limit = fetch_limit

    async def fetch(self, market: Market, index: int, bound: Bound) -> FetchedWindow:
        await self._limiter.acquire()
        try:
            records = await self._client.fetch_candles(
                symbol=market.symbol,
                interval=market.timeframe,
                limit=self.fetch_limit,
                start_time=bound.start,
                end_time=bound.end,
            )
        except Exception as e:
            raise RemoteFetchError(index, bound) from e

        logger.debug("Fetched window {} {} {} rows={}", index, market, bound, len(records))
        return FetchedWindow(index=index, bound=bound, records=list(records))

