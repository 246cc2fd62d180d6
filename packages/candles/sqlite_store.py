from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import aiosqlite
from loguru import logger

from packages.common.timeframes import timeframe_to_ms
from packages.common.types import Candle, Market
from packages.candles.types import Filter, GapAudit


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;
PRAGMA temp_store=MEMORY;

CREATE TABLE IF NOT EXISTS candles (
  exchange TEXT NOT NULL,
  symbol TEXT NOT NULL,
  timeframe TEXT NOT NULL,
  ts_ms INTEGER NOT NULL,              -- bucket open time
  open REAL NOT NULL,
  high REAL NOT NULL,
  low REAL NOT NULL,
  close REAL NOT NULL,
  volume REAL NOT NULL,
  PRIMARY KEY (exchange, symbol, timeframe, ts_ms)
);
"""

_COLUMNS = ("exchange", "symbol", "timeframe", "ts_ms", "open", "high", "low", "close", "volume")
_OPS = ("=", "!=", "<", "<=", ">", ">=")


def _column(name: str) -> str:
    if name not in _COLUMNS:
        raise ValueError(f"Unknown candle column {name!r}. Known: {list(_COLUMNS)}")
    return name


def _row_to_candle(r: Sequence) -> Candle:
    return Candle(
        exchange=str(r[0]),
        symbol=str(r[1]),
        timeframe=str(r[2]),
        ts_ms=int(r[3]),
        open=float(r[4]),
        high=float(r[5]),
        low=float(r[6]),
        close=float(r[7]),
        volume=float(r[8]),
    )


@dataclass
class SQLiteCandleStore:
    db_path: Path
    conn: aiosqlite.Connection

    @classmethod
    async def open(cls, db_path: Path) -> "SQLiteCandleStore":
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(str(db_path))
        await conn.executescript(SCHEMA_SQL)
        await conn.commit()
        logger.info("SQLiteCandleStore ready: {}", db_path)
        return cls(db_path=db_path, conn=conn)

    async def close(self) -> None:
        await self.conn.close()
        logger.info("SQLiteCandleStore closed")

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
        direction = order_direction.strip().upper()
        if direction not in ("ASC", "DESC"):
            raise ValueError(f"order_direction must be 'asc' or 'desc' (got {order_direction!r})")

        where: list[str] = []
        params: list[object] = []
        for col, op, value in filters:
            if op not in _OPS:
                raise ValueError(f"Unsupported filter op {op!r}. Supported: {list(_OPS)}")
            where.append(f"{_column(col)} {op} ?")
            params.append(value)

        k = _column(key)
        where.append(f"{k} >= ? AND {k} <= ?")
        params.extend([int(start), int(end)])

        sql = f"""
        SELECT {", ".join(_COLUMNS)}
        FROM candles
        WHERE {" AND ".join(where)}
        ORDER BY {_column(order_by)} {direction}
        """
        async with self.conn.execute(sql, params) as cur:
            rows = await cur.fetchall()
        return [_row_to_candle(r) for r in rows]

    async def audit_gaps(self, market: Market, start: int, end: int) -> GapAudit:
        """
        Candles of [start..end] newest first, plus the indexes i where
        candles[i] and candles[i + 1] are more than one bucket apart.
        """
        tf_ms = timeframe_to_ms(market.timeframe)
        candles = await self.get_in_range(
            [
                ("exchange", "=", market.exchange),
                ("symbol", "=", market.symbol),
                ("timeframe", "=", market.timeframe),
            ],
            start=start,
            end=end,
            order_by="ts_ms",
            order_direction="desc",
        )

        gaps = [i for i in range(len(candles) - 1) if candles[i].ts_ms - candles[i + 1].ts_ms > tf_ms]
        if gaps:
            logger.debug("Audit {} [{}..{}] candles={} gaps={}", market, start, end, len(candles), len(gaps))
        return GapAudit(gaps=gaps, candles=candles)

    async def upsert(self, candle: Candle) -> None:
        await self.conn.execute(
            """
            INSERT INTO candles (exchange, symbol, timeframe, ts_ms, open, high, low, close, volume)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(exchange, symbol, timeframe, ts_ms) DO UPDATE SET
              open=excluded.open,
              high=excluded.high,
              low=excluded.low,
              close=excluded.close,
              volume=excluded.volume
            """,
            (
                candle.exchange,
                candle.symbol,
                candle.timeframe,
                int(candle.ts_ms),
                float(candle.open),
                float(candle.high),
                float(candle.low),
                float(candle.close),
                float(candle.volume),
            ),
        )
        await self.conn.commit()

    async def count(self, market: Market) -> int:
        async with self.conn.execute(
            "SELECT COUNT(*) FROM candles WHERE exchange=? AND symbol=? AND timeframe=?",
            (market.exchange, market.symbol, market.timeframe),
        ) as cur:
            row = await cur.fetchone()
        return 0 if not row else int(row[0])
