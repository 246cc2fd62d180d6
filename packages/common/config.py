from __future__ import annotations

from pathlib import Path
from typing import Any, List

import yaml
from pydantic import BaseModel, Field, field_validator

from .timeframes import timeframe_to_ms


def normalize_symbol(symbol: str) -> str:
    s = symbol.strip().upper()
    if "/" not in s:
        raise ValueError(f"symbol must be canonical like 'BTC/USDT' (got {symbol!r})")
    base, quote = s.split("/", 1)
    if not base or not quote:
        raise ValueError(f"symbol must be canonical like 'BTC/USDT' (got {symbol!r})")
    return f"{base}/{quote}"


def normalize_timeframes(v: List[str]) -> List[str]:
    out: List[str] = []
    seen: set[str] = set()
    for tf in v:
        tf2 = str(tf).strip()
        if not tf2:
            continue
        timeframe_to_ms(tf2)  # validates known timeframe
        if tf2 not in seen:
            seen.add(tf2)
            out.append(tf2)
    return out


class MarketConfig(BaseModel):
    exchange: str = "binance"
    type: str = "spot"
    symbol: str = "BTC/USDT"
    timeframes: List[str] = Field(default_factory=lambda: ["1h"])

    @field_validator("symbol")
    @classmethod
    def _validate_symbol(cls, v: str) -> str:
        return normalize_symbol(v)

    @field_validator("timeframes")
    @classmethod
    def _validate_timeframes(cls, v: List[str]) -> List[str]:
        out = normalize_timeframes(v)
        if not out:
            raise ValueError("market.timeframes must contain at least one valid timeframe")
        return out


class SyncConfig(BaseModel):
    fetch_limit: int = Field(1000, gt=0)             # Binance max klines per request
    requests_per_second: float = Field(10.0, gt=0)   # shared by every concurrent sync
    burst: int = Field(1, ge=1)


class RestConfig(BaseModel):
    base_url: str = "https://api.binance.com"
    request_timeout_s: int = Field(15, gt=0)
    max_retries: int = Field(5, ge=1)


class DataConfig(BaseModel):
    db_path: str = "data/candles.sqlite"


class LogConfig(BaseModel):
    level: str = "INFO"


class CandleSyncConfig(BaseModel):
    market: MarketConfig = Field(default_factory=MarketConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    rest: RestConfig = Field(default_factory=RestConfig)
    data: DataConfig = Field(default_factory=DataConfig)
    log: LogConfig = Field(default_factory=LogConfig)


def _maybe_load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text())
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML structure in {path}")
    return data


def load_candle_sync_config(path: Path = Path("config/candle_sync.yaml")) -> CandleSyncConfig:
    raw = _maybe_load_yaml(path)
    return CandleSyncConfig.model_validate(raw)
