from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

from packages.candles.types import Bound


class SyncState(str, Enum):
    IDLE = "IDLE"
    QUERYING_EXISTING = "QUERYING_EXISTING"
    AUDITING_GAPS = "AUDITING_GAPS"
    BUILDING_BOUNDS = "BUILDING_BOUNDS"
    CONSOLIDATING = "CONSOLIDATING"
    FETCHING = "FETCHING"
    UPSERTING = "UPSERTING"
    COMPLETE = "COMPLETE"


@dataclass(frozen=True)
class SyncSuccess:
    """
    Every window fetched and persisted. Empty bounds: nothing was missing.

    An edge bucket at most one width away from the nearest stored candle is
    not requested, so a success can still leave that single bucket absent.
    """

    bounds: Tuple[Bound, ...] = ()
    windows: int = 0
    upserted: int = 0

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class SyncPartialFailure:
    """Windows before `at` are persisted (plus possibly part of window `at`)."""

    bounds: Tuple[Bound, ...]
    at: int
    cause: BaseException
    upserted: int

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class SyncFailure:
    """Nothing was persisted."""

    bounds: Tuple[Bound, ...]
    cause: BaseException

    @property
    def ok(self) -> bool:
        return False


SyncOutcome = Union[SyncSuccess, SyncPartialFailure, SyncFailure]
