# apps/candle_sync/main.py

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from packages.adapters.binance_spot.klines import BinanceSpotKlinesClient
from packages.candles.limiter import TokenBucketLimiter
from packages.candles.outcome import SyncOutcome, SyncSuccess
from packages.candles.request import validate_sync_request
from packages.candles.sqlite_store import SQLiteCandleStore
from packages.candles.sync_range import CandleRangeSync
from packages.common.config import CandleSyncConfig, load_candle_sync_config, normalize_timeframes
from packages.common.datetime_utils import now_ms, parse_ts_arg_to_ms
from packages.common.log import configure_logging
from packages.common.timeframes import timeframe_to_ms
from packages.common.types import Market


def _split_csv(v: Optional[str]) -> Optional[List[str]]:
    if v is None:
        return None
    parts = [p.strip() for p in v.split(",")]
    out = [p for p in parts if p]
    return out or None


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Fill missing candles for a market over a time range")

    p.add_argument("--config", default="config/candle_sync.yaml", help="Config yaml path")

    # Optional overrides (otherwise come from config)
    p.add_argument("--symbol", default=None, help="Symbol override (e.g. BTC/USDT)")
    p.add_argument("--timeframes", default=None, help="Comma-separated tf override, e.g. 1m,1h")
    p.add_argument("--db-path", default=None, help="SQLite path override")
    p.add_argument("--log-level", default=None, help="Log level override (DEBUG, INFO, ...)")

    p.add_argument("--start", required=True, help="Range start, ISO or epoch ms (inclusive)")
    p.add_argument("--end", default=None, help="Range end, ISO or epoch ms (inclusive). Default: now")

    return p.parse_args(argv)


def _outcome_line(market: Market, outcome: SyncOutcome) -> str:
    if isinstance(outcome, SyncSuccess):
        if not outcome.bounds:
            return f"{market}: already complete"
        return f"{market}: ok windows={outcome.windows} upserted={outcome.upserted}"
    at = getattr(outcome, "at", 0)
    return f"{market}: FAILED at window {at}/{len(outcome.bounds)} cause={outcome.cause}"


async def run(cfg: CandleSyncConfig, start_ms: int, end_ms: int) -> List[SyncOutcome]:
    requests = [
        validate_sync_request(
            Market(
                exchange=cfg.market.exchange,
                type=cfg.market.type,
                symbol=cfg.market.symbol,
                timeframe=tf,
            ),
            start_ms,
            end_ms,
        )
        for tf in cfg.market.timeframes
    ]

    store = await SQLiteCandleStore.open(Path(cfg.data.db_path))
    try:
        client = BinanceSpotKlinesClient(
            base_url=cfg.rest.base_url,
            request_timeout_s=cfg.rest.request_timeout_s,
            max_retries=cfg.rest.max_retries,
        )
        limiter = TokenBucketLimiter(cfg.sync.requests_per_second, burst=cfg.sync.burst)
        syncer = CandleRangeSync(store, client, limiter, fetch_limit=cfg.sync.fetch_limit)

        def _on_start(market: Market):
            def _cb(bounds) -> None:
                width = timeframe_to_ms(market.timeframe)
                logger.info(
                    "Sync start {} windows={} candles<={}",
                    market,
                    len(bounds),
                    sum(b.span // width + 1 for b in bounds),
                )
            return _cb

        outcomes = await asyncio.gather(
            *(syncer.sync(m, r, on_sync_start=_on_start(m)) for m, r in requests)
        )

        for (m, _), outcome in zip(requests, outcomes):
            logger.info("{} stored={}", _outcome_line(m, outcome), await store.count(m))

        return list(outcomes)
    finally:
        await store.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)

    cfg = load_candle_sync_config(Path(args.config))

    overrides = {}
    if args.symbol:
        overrides["symbol"] = args.symbol
    tfs = _split_csv(args.timeframes)
    if tfs:
        overrides["timeframes"] = normalize_timeframes(tfs)
    if overrides:
        cfg = cfg.model_copy(
            update={"market": cfg.market.model_validate({**cfg.market.model_dump(), **overrides})}
        )
    if args.db_path:
        cfg = cfg.model_copy(update={"data": cfg.data.model_copy(update={"db_path": args.db_path})})

    configure_logging(args.log_level or cfg.log.level)

    start_ms = parse_ts_arg_to_ms(args.start)
    end_ms = parse_ts_arg_to_ms(args.end) if args.end else now_ms()

    try:
        outcomes = asyncio.run(run(cfg, start_ms, end_ms))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 130

    return 0 if all(o.ok for o in outcomes) else 1


if __name__ == "__main__":
    sys.exit(main())
