from __future__ import annotations

from datetime import date, timedelta
from typing import Callable, Protocol

from packages.common.datetime_utils import iter_days, today as local_today


class WindowSettings(Protocol):
    offset: int
    start_from: date
    redownload: bool


class DateWindowPlanner:
    """
    Closed day window examined by one sync tick:
      - incremental: [today - offset .. today]
      - reload:      [start_from .. today]

    Settings are read on every plan() call so edits apply on the next tick.
    An inverted window (negative offset, start_from in the future) is empty.
    """

    def __init__(self, settings: WindowSettings, today: Callable[[], date] = local_today):
        self._settings = settings
        self._today = today

    def bounds(self) -> tuple[date, date]:
        end = self._today()
        if self._settings.redownload:
            start = self._settings.start_from
        else:
            start = end - timedelta(days=int(self._settings.offset))
        return start, end

    def plan(self) -> list[date]:
        start, end = self.bounds()
        return list(iter_days(start, end))
