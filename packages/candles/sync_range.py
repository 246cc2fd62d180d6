from __future__ import annotations

from typing import Callable, Optional, Tuple

from loguru import logger

from packages.common.datetime_utils import fmt_ms
from packages.common.errors import RemoteFetchError, UpsertError
from packages.common.timeframes import timeframe_to_ms
from packages.common.types import Market, Range
from packages.candles.bounds import compute_bounds, is_fully_covered
from packages.candles.consolidate import consolidate_bounds
from packages.candles.limiter import TokenBucketLimiter
from packages.candles.outcome import (
    SyncFailure,
    SyncOutcome,
    SyncPartialFailure,
    SyncState,
    SyncSuccess,
)
from packages.candles.sequencer import FetchSequencer
from packages.candles.types import Bound, CandleStore, MarketDataClient
from packages.candles.upsert import UpsertPipeline

OnSyncStart = Callable[[Tuple[Bound, ...]], None]
OnSyncEnd = Callable[[SyncOutcome], None]


class _SyncRun:
    """State of one sync invocation. Never shared between invocations."""

    def __init__(self, market: Market):
        self.market = market
        self.state = SyncState.IDLE

    def enter(self, state: SyncState, window: Optional[int] = None) -> None:
        if window is None:
            logger.debug("Sync {} {} -> {}", self.market, self.state.value, state.value)
        else:
            logger.debug("Sync {} {} -> {}({})", self.market, self.state.value, state.value, window)
        self.state = state


class CandleRangeSync:
    """
    Fill the missing candles of one series over [start..end].

    Only buckets absent from the store are requested; neighbouring windows are
    consolidated up to the page cap, fetched one at a time through the shared
    limiter and upserted oldest first. Many syncs may run concurrently on one
    instance; they share nothing but the limiter.

    Fetch and upsert failures never escape sync(): they become a
    SyncPartialFailure/SyncFailure outcome. Store read errors propagate.
    """

    def __init__(
        self,
        store: CandleStore,
        client: MarketDataClient,
        limiter: TokenBucketLimiter,
        *,
        fetch_limit: int = 1000,
    ):
        self._store = store
        self._sequencer = FetchSequencer(client, limiter, fetch_limit=fetch_limit)
        self._upserts = UpsertPipeline(store)
        self.fetch_limit = fetch_limit

    async def sync(
        self,
        market: Market,
        rng: Range,
        on_sync_start: Optional[OnSyncStart] = None,
        on_sync_end: Optional[OnSyncEnd] = None,
    ) -> SyncOutcome:
        rng = rng.normalized()
        width = timeframe_to_ms(market.timeframe)
        run = _SyncRun(market)

        run.enter(SyncState.QUERYING_EXISTING)
        existing = await self._store.get_in_range(
            [
                ("exchange", "=", market.exchange),
                ("symbol", "=", market.symbol),
                ("timeframe", "=", market.timeframe),
            ],
            key="ts_ms",
            start=rng.start,
            end=rng.end,
            order_by="ts_ms",
            order_direction="desc",
        )

        audit = None
        if existing and not is_fully_covered(existing, rng, width):
            run.enter(SyncState.AUDITING_GAPS)
            audit = await self._store.audit_gaps(market, rng.start, rng.end)

        run.enter(SyncState.BUILDING_BOUNDS)
        bounds = compute_bounds(existing, audit, rng, width)

        if not bounds:
            logger.info("All candles present {} ({} -> {})", market, fmt_ms(rng.start), fmt_ms(rng.end))
            return self._finish(run, SyncSuccess(), on_sync_end)

        run.enter(SyncState.CONSOLIDATING)
        consolidated = tuple(consolidate_bounds(bounds, fetch_limit=self.fetch_limit, width=width))

        logger.info(
            "Syncing {} window(s) for {} ({} -> {}) from {} gap bound(s)",
            len(consolidated),
            market,
            fmt_ms(rng.start),
            fmt_ms(rng.end),
            len(bounds),
        )
        for b in consolidated:
            logger.debug("  {}-{} [{} candles]", b.start, b.end, b.span // width)

        if on_sync_start is not None:
            on_sync_start(consolidated)

        upserted = 0
        for i, b in enumerate(consolidated):
            try:
                run.enter(SyncState.FETCHING, i)
                window = await self._sequencer.fetch(market, i, b)

                run.enter(SyncState.UPSERTING, i)
                upserted += await self._upserts.persist(market, window.records)

            except (RemoteFetchError, UpsertError) as e:
                if isinstance(e, UpsertError):
                    upserted += e.written

                logger.opt(exception=e).error(
                    "Error syncing candles {}: stopped at window {}/{} {} upserted={}",
                    market,
                    i,
                    len(consolidated),
                    b,
                    upserted,
                )

                if upserted > 0:
                    outcome: SyncOutcome = SyncPartialFailure(bounds=consolidated, at=i, cause=e, upserted=upserted)
                else:
                    outcome = SyncFailure(bounds=consolidated, cause=e)
                return self._finish(run, outcome, on_sync_end)

        logger.info("Sync complete {} windows={} upserted={}", market, len(consolidated), upserted)
        return self._finish(
            run,
            SyncSuccess(bounds=consolidated, windows=len(consolidated), upserted=upserted),
            on_sync_end,
        )

    def _finish(self, run: _SyncRun, outcome: SyncOutcome, on_sync_end: Optional[OnSyncEnd]) -> SyncOutcome:
        run.enter(SyncState.COMPLETE)
        if on_sync_end is not None:
            on_sync_end(outcome)
        return outcome
