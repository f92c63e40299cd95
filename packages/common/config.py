from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .constants import ALL_SECURITIES_ID, CANDLES
from .timeframes import timedelta_to_timeframe, timeframe_to_ms, timeframe_to_timedelta
from .types import Instrument, LocalMarketDataDrive, time_frame_args


def normalize_symbol(symbol: str) -> str:
    s = symbol.strip().upper()
    if not s:
        raise ValueError("symbol must be non-empty")
    if "/" in s:
        base, quote = s.split("/", 1)
        if not base or not quote:
            raise ValueError(f"symbol must be canonical like 'BTC/USDT' (got {symbol!r})")
        return f"{base}/{quote}"
    return s


def _dedupe_timeframes(v: List[str]) -> List[str]:
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


class SecurityConfig(BaseModel):
    id: str
    price_step: Decimal = Decimal("0")
    data_kinds: List[str] = Field(default_factory=lambda: [CANDLES])
    timeframes: List[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, v: str) -> str:
        return normalize_symbol(v)

    @field_validator("timeframes", mode="before")
    @classmethod
    def _validate_timeframes(cls, v):
        if v is None:
            return []
        return _dedupe_timeframes(list(v))

    def to_instrument(self) -> Instrument:
        return Instrument(
            id=self.id,
            price_step=self.price_step,
            data_kinds=frozenset(self.data_kinds),
            candle_args=time_frame_args(self.timeframes),
        )


class TaskConfig(BaseModel):
    interval: str = "1d"
    drive: Optional[str] = None
    extension_info: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("interval")
    @classmethod
    def _validate_interval(cls, v: str) -> str:
        timeframe_to_ms(v)
        return v.strip()

    def interval_timedelta(self) -> timedelta:
        return timeframe_to_timedelta(self.interval)


class SourceConfig(BaseModel):
    kind: Literal["binance_spot"] = "binance_spot"
    base_url: str = "https://api.binance.com"
    request_timeout_s: int = 15
    max_retries: int = 5
    page_limit: int = Field(default=1000, ge=1, le=1000)
    default_timeframes: List[str] = Field(default_factory=lambda: ["1d"])
    quote_assets: List[str] = Field(default_factory=list)

    @field_validator("default_timeframes")
    @classmethod
    def _validate_default_timeframes(cls, v: List[str]) -> List[str]:
        out = _dedupe_timeframes(v)
        if not out:
            raise ValueError("source.default_timeframes must contain at least one valid timeframe")
        return out


class DataConfig(BaseModel):
    default_drive: str = "data"


class DayfillConfig(BaseModel):
    source: SourceConfig = Field(default_factory=SourceConfig)
    # Missing section = first run: task defaults get applied.
    task: Optional[TaskConfig] = None
    securities: List[SecurityConfig] = Field(default_factory=list)
    data: DataConfig = Field(default_factory=DataConfig)

    @property
    def is_new_task(self) -> bool:
        return self.task is None

    def instruments(self) -> List[Instrument]:
        return [s.to_instrument() for s in self.securities]

    def default_drive(self) -> LocalMarketDataDrive:
        return LocalMarketDataDrive(Path(self.data.default_drive))

    def wants_all_securities(self) -> bool:
        return any(s.id == ALL_SECURITIES_ID for s in self.securities)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    data = yaml.safe_load(path.read_text())
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML structure in {path}")
    return data


def load_dayfill_config(path: Path = Path("config/dayfill.yaml")) -> DayfillConfig:
    return DayfillConfig.model_validate(_load_yaml(path))


def save_task_settings(
    path: Path,
    *,
    interval: timedelta,
    drive: Optional[LocalMarketDataDrive],
    extension_info: Dict[str, Any],
) -> None:
    """Write the task section back, leaving the rest of the file untouched."""
    raw = _load_yaml(path) if path.exists() else {}
    raw["task"] = {
        "interval": timedelta_to_timeframe(interval),
        "drive": str(drive.path) if drive else None,
        "extension_info": dict(extension_info),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(raw, sort_keys=False))
