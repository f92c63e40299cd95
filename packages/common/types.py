from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Tuple

from .constants import ALL_SECURITIES_ID, CANDLES, TIME_FRAME_CANDLE


@dataclass(frozen=True)
class CandleArg:
    kind: str  # e.g. "time_frame"; other kinds are ignored by the day sync
    arg: str   # e.g. "1d"


@dataclass(frozen=True)
class Instrument:
    """
    Read-only view of a registry security.

    - id: stable identity, e.g. "BTC/USDT"
    - price_step: minimal price increment; zero means stored prices are unusable
    - data_kinds: what the task should collect for it ("candles")
    - candle_args: configured candle series, only "time_frame" ones are synced
    """
    id: str
    price_step: Decimal = Decimal("0")
    data_kinds: frozenset[str] = frozenset({CANDLES})
    candle_args: Tuple[CandleArg, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        return self.id

    def has_candles(self) -> bool:
        return CANDLES in self.data_kinds

    def timeframes(self) -> list[str]:
        out: list[str] = []
        for a in self.candle_args:
            if a.kind != TIME_FRAME_CANDLE:
                continue
            tf = a.arg.strip()
            if tf and tf not in out:
                out.append(tf)
        return out

    @property
    def is_all_marker(self) -> bool:
        return self.id == ALL_SECURITIES_ID


def time_frame_args(timeframes: Iterable[str]) -> Tuple[CandleArg, ...]:
    return tuple(CandleArg(kind=TIME_FRAME_CANDLE, arg=tf) for tf in timeframes)


@dataclass(frozen=True)
class LocalMarketDataDrive:
    path: Path

    def __str__(self) -> str:
        return str(self.path)
