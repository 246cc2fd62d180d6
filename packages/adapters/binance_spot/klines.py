from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Optional, Set

import aiohttp
from loguru import logger

from packages.candles.types import KlineRecord


BINANCE_SUPPORTED_TFS: Set[str] = {
    "1s",
    "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "8h", "12h",
    "1d", "3d", "1w", "1M",
}

# Retrying these cannot succeed; 429/418 are rate limiting and are retried.
_NON_RETRYABLE = {400, 401, 403, 404}


class BinanceHTTPError(RuntimeError):
    def __init__(self, status: int, body: str):
        super().__init__(f"Binance klines HTTP {status}: {body[:200]}")
        self.status = status


def parse_klines(data: Any) -> list[KlineRecord]:
    """
    Binance kline rows:
    [open_time, open, high, low, close, volume, close_time, quote_volume, trades, ...]

    Prices stay as Binance sends them (text); rows are returned ascending.
    """
    if not isinstance(data, list):
        raise ValueError(f"Unexpected klines payload type {type(data).__name__}")

    out: list[KlineRecord] = []
    for row in data:
        if not isinstance(row, (list, tuple)) or len(row) < 6:
            raise ValueError(f"Malformed kline row: {row!r}")
        out.append(
            KlineRecord(
                open_time=int(row[0]),
                open=row[1],
                high=row[2],
                low=row[3],
                close=row[4],
                volume=row[5],
            )
        )
    out.sort(key=lambda r: r.open_time)
    return out


@dataclass
class BinanceSpotKlinesClient:
    base_url: str = "https://api.binance.com"
    request_timeout_s: int = 15
    max_retries: int = 5

    def _symbol_to_binance(self, symbol: str) -> str:
        return symbol.replace("/", "").replace("-", "").replace("_", "").upper()

    def _validate_tf(self, interval: str) -> None:
        if interval not in BINANCE_SUPPORTED_TFS:
            raise ValueError(
                f"Unsupported Binance interval={interval!r}. "
                f"Supported: {sorted(BINANCE_SUPPORTED_TFS)}"
            )

    async def fetch_candles(
        self,
        *,
        symbol: str,
        interval: str,
        limit: int,
        start_time: int,
        end_time: int,
    ) -> list[KlineRecord]:
        self._validate_tf(interval)

        params = {
            "symbol": self._symbol_to_binance(symbol),
            "interval": interval,
            "startTime": str(int(start_time)),
            "endTime": str(int(end_time)),
            "limit": str(min(int(limit), 1000)),
        }

        url = f"{self.base_url}/api/v3/klines"
        timeout = aiohttp.ClientTimeout(total=self.request_timeout_s)

        last_err: Optional[BaseException] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                async with aiohttp.ClientSession(timeout=timeout) as sess:
                    async with sess.get(url, params=params) as resp:
                        text = await resp.text()
                        if resp.status != 200:
                            raise BinanceHTTPError(resp.status, text)
                        data = await resp.json(content_type=None)

                return parse_klines(data)

            except BinanceHTTPError as e:
                if e.status in _NON_RETRYABLE:
                    raise
                last_err = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_err = e

            logger.warning(
                "Binance klines attempt {}/{} failed symbol={} interval={} [{}..{}]: {}",
                attempt,
                self.max_retries,
                symbol,
                interval,
                start_time,
                end_time,
                last_err,
            )
            if attempt < self.max_retries:
                base = min(2 ** (attempt - 1), 10)
                await asyncio.sleep(base + random.uniform(0, 0.25))

        raise RuntimeError(f"Binance klines failed after {self.max_retries} attempts") from last_err
