from __future__ import annotations

from packages.common.types import Range


class CandleSyncError(Exception):
    """Base class for candle sync failures."""


class RemoteFetchError(CandleSyncError):
    def __init__(self, index: int, bound: Range):
        super().__init__(f"Remote fetch failed for window {index} {bound}")
        self.index = index
        self.bound = bound


class UpsertError(CandleSyncError):
    def __init__(self, key: str, written: int = 0):
        super().__init__(f"Upsert failed for candle {key}")
        self.key = key
        self.written = written  # candles of the window stored before the failure


class UnsupportedRangeError(CandleSyncError, ValueError):
    """Malformed market or range handed to a sync caller."""
