from __future__ import annotations

from datetime import date
from typing import Dict, Hashable, Literal, Optional

SkipScope = Literal["instrument", "timeframe"]

SKIP_SCOPES: tuple[str, ...] = ("instrument", "timeframe")


class GapTracker:
    """
    Days already attempted in this process lifetime ("skip dates").

    A day is marked before its fetch and cleared only after a successful
    persist, so a day that came back empty stays skipped until reset().

    scope="instrument" keys the set by instrument id alone: a day skipped for
    one timeframe is skipped for every timeframe of that instrument.
    scope="timeframe" keys it by (instrument id, timeframe).
    """

    def __init__(self, scope: SkipScope = "instrument"):
        if scope not in SKIP_SCOPES:
            raise ValueError(f"Unknown skip scope {scope!r} (expected one of {SKIP_SCOPES})")
        self.scope: SkipScope = scope
        self._dates: Dict[Hashable, set[date]] = {}

    def _key(self, instrument_id: str, timeframe: Optional[str]) -> Hashable:
        if self.scope == "instrument":
            return instrument_id
        if timeframe is None:
            raise ValueError("timeframe is required when skip scope is 'timeframe'")
        return (instrument_id, timeframe)

    def all_dates(self, instrument_id: str, timeframe: Optional[str] = None) -> set[date]:
        """Live set for the key, created empty on first access."""
        return self._dates.setdefault(self._key(instrument_id, timeframe), set())

    def mark_in_flight(self, instrument_id: str, day: date, timeframe: Optional[str] = None) -> None:
        self.all_dates(instrument_id, timeframe).add(day)

    def is_in_flight(self, instrument_id: str, day: date, timeframe: Optional[str] = None) -> bool:
        return day in self.all_dates(instrument_id, timeframe)

    def clear(self, instrument_id: str, day: date, timeframe: Optional[str] = None) -> None:
        self.all_dates(instrument_id, timeframe).discard(day)

    def reset(self) -> None:
        self._dates.clear()

    def __len__(self) -> int:
        return sum(len(s) for s in self._dates.values())
