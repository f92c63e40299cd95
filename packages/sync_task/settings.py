from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import TypeAdapter

from packages.common.constants import (
    DEFAULT_INTERVAL,
    DEFAULT_OFFSET_DAYS,
    DEFAULT_START_FROM,
    LEGACY_INTERVAL,
)
from packages.common.datetime_utils import parse_date
from packages.common.types import LocalMarketDataDrive
from packages.common.backfill.gap_tracker import SkipScope

_INT = TypeAdapter(int)
_BOOL = TypeAdapter(bool)
_SKIP_SCOPE = TypeAdapter(SkipScope)

OFFSET_KEY = "Offset"
START_FROM_KEY = "StartFrom"
REDOWNLOAD_KEY = "ReDownLoad"
SKIP_SCOPE_KEY = "SkipScope"
RETRY_FAILED_KEY = "RetryFailedDays"


@dataclass
class TaskSettingsBag:
    """Host-owned settings: scheduling interval, storage drive, free-form extension values."""
    interval: timedelta = DEFAULT_INTERVAL
    drive: Optional[LocalMarketDataDrive] = None
    extension_info: Dict[str, Any] = field(default_factory=dict)


class TaskSettings:
    """
    Typed view over TaskSettingsBag.extension_info.

    Values are coerced on read (e.g. "3" -> 3, "2020-01-05" -> date) and
    written back as-is. There is no range check: a negative offset simply
    yields an empty day window.
    """

    def __init__(self, bag: TaskSettingsBag):
        self.bag = bag

    def _get(self, key: str, adapter: TypeAdapter, default: Any) -> Any:
        raw = self.bag.extension_info.get(key)
        if raw is None:
            return default
        return adapter.validate_python(raw)

    @property
    def offset(self) -> int:
        return self._get(OFFSET_KEY, _INT, 0)

    @offset.setter
    def offset(self, value: int) -> None:
        self.bag.extension_info[OFFSET_KEY] = int(value)

    @property
    def start_from(self) -> date:
        raw = self.bag.extension_info.get(START_FROM_KEY)
        if raw is None:
            return DEFAULT_START_FROM
        return parse_date(raw)

    @start_from.setter
    def start_from(self, value: date) -> None:
        self.bag.extension_info[START_FROM_KEY] = value

    @property
    def redownload(self) -> bool:
        return self._get(REDOWNLOAD_KEY, _BOOL, False)

    @redownload.setter
    def redownload(self, value: bool) -> None:
        self.bag.extension_info[REDOWNLOAD_KEY] = bool(value)

    @property
    def skip_scope(self) -> SkipScope:
        return self._get(SKIP_SCOPE_KEY, _SKIP_SCOPE, "instrument")

    @skip_scope.setter
    def skip_scope(self, value: SkipScope) -> None:
        self.bag.extension_info[SKIP_SCOPE_KEY] = _SKIP_SCOPE.validate_python(value)

    @property
    def retry_failed_days(self) -> bool:
        return self._get(RETRY_FAILED_KEY, _BOOL, False)

    @retry_failed_days.setter
    def retry_failed_days(self, value: bool) -> None:
        self.bag.extension_info[RETRY_FAILED_KEY] = bool(value)

    @property
    def interval(self) -> timedelta:
        return self.bag.interval

    @interval.setter
    def interval(self, value: timedelta) -> None:
        self.bag.interval = value

    @property
    def drive(self) -> Optional[LocalMarketDataDrive]:
        return self.bag.drive

    def apply_defaults(self, is_new: bool) -> None:
        if is_new:
            self.offset = DEFAULT_OFFSET_DAYS
            self.start_from = DEFAULT_START_FROM
            self.interval = DEFAULT_INTERVAL
            self.redownload = False
        elif self.interval == LEGACY_INTERVAL:
            logger.info("Upgrading legacy interval {} -> {}", LEGACY_INTERVAL, DEFAULT_INTERVAL)
            self.interval = DEFAULT_INTERVAL
