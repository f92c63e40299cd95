from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Protocol, Sequence

from packages.common.types import Instrument


@dataclass(frozen=True)
class OHLCV:
    ts_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: float


class HistoryFetchError(RuntimeError):
    """Source call failed (transport, HTTP, decoding) - distinct from "no data for that day"."""


class HistorySource(Protocol):
    # Folder for temporary per-day dump files; None disables dumps.
    dump_folder: Optional[Path]

    async def fetch_candles(
        self,
        instrument: Instrument,
        start: datetime,
        end: datetime,
        timeframe: str,
    ) -> list[OHLCV]:
        """
        Return candles with open time in [start .. end] (both inclusive),
        sorted ascending by ts_ms. Empty list when the source has nothing.
        Raise HistoryFetchError when the call itself failed.
        """
        ...

    async def list_discoverable_instruments(self) -> list[Instrument]:
        ...


class CandleStorage(Protocol):
    def get_persisted_dates(self, instrument: Instrument, timeframe: str) -> set[date]:
        ...

    def persist(self, instrument: Instrument, timeframe: str, candles: Sequence[OHLCV]) -> int:
        """Append; rows with an existing open time are overwritten."""
        ...
