# apps/candle_sync/tests/test_main.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import List

import pytest

from apps.candle_sync import main as app
from packages.candles.sqlite_store import SQLiteCandleStore
from packages.candles.types import KlineRecord
from packages.common.errors import UnsupportedRangeError
from packages.common.timeframes import timeframe_to_ms
from packages.common.types import Market


@dataclass
class DummyKlinesClient:
    base_url: str = ""
    request_timeout_s: int = 0
    max_retries: int = 0

    async def fetch_candles(self, *, symbol, interval, limit, start_time, end_time):
        tf_ms = timeframe_to_ms(interval)
        ts = ((start_time + tf_ms - 1) // tf_ms) * tf_ms
        out: List[KlineRecord] = []
        while ts <= end_time and len(out) < limit:
            out.append(KlineRecord(open_time=ts, open="1", high="1", low="1", close="1", volume="1"))
            ts += tf_ms
        return out


def _write_cfg(tmp_path: Path) -> Path:
    p = tmp_path / "candle_sync.yaml"
    p.write_text(
        "market:\n"
        "  symbol: BTC/USDT\n"
        "  timeframes: ['1m']\n"
        "sync:\n"
        "  requests_per_second: 1000\n"
        f"data:\n  db_path: {tmp_path / 'c.sqlite'}\n"
    )
    return p


def test_cli_syncs_each_timeframe(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(app, "BinanceSpotKlinesClient", DummyKlinesClient)
    cfg = _write_cfg(tmp_path)

    rc = app.main([
        "--config", str(cfg),
        "--timeframes", "1m,5m",
        "--start", "1970-01-01T00:00:00Z",
        "--end", "1970-01-01T01:00:00Z",
    ])

    assert rc == 0

    async def _count():
        store = await SQLiteCandleStore.open(tmp_path / "c.sqlite")
        try:
            m1 = Market(exchange="binance", type="spot", symbol="BTC/USDT", timeframe="1m")
            m5 = Market(exchange="binance", type="spot", symbol="BTC/USDT", timeframe="5m")
            return await store.count(m1), await store.count(m5)
        finally:
            await store.close()

    assert asyncio.run(_count()) == (61, 13)


def test_cli_rejects_bad_range(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(app, "BinanceSpotKlinesClient", DummyKlinesClient)
    cfg = _write_cfg(tmp_path)

    with pytest.raises(UnsupportedRangeError):
        app.main(["--config", str(cfg), "--start", "2000", "--end", "1000"])
