from __future__ import annotations

from datetime import date, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from loguru import logger

from packages.common.constants import CANDLES
from packages.common.datetime_utils import today as local_today
from packages.common.types import Instrument, LocalMarketDataDrive

from packages.common.backfill.types import CandleStorage, HistorySource
from packages.common.backfill.dump_files import resolve_temp_folder
from packages.common.backfill.gap_tracker import GapTracker
from packages.common.backfill.planner import DateWindowPlanner
from packages.common.backfill.service import SyncLoop, TickReport

from packages.sync_task.events import NewSecuritiesEvent
from packages.sync_task.security_filter import drop_zero_price_step, select_working_set
from packages.sync_task.settings import TaskSettings, TaskSettingsBag


class TaskState(str, Enum):
    CONFIGURED = "CONFIGURED"
    STARTED = "STARTED"
    STOPPED = "STOPPED"


StorageFactory = Callable[[LocalMarketDataDrive], CandleStorage]


class HistorySyncTask:
    """
    Periodic daily-candle backfill task.

    Lifecycle: CONFIGURED -> start() -> STARTED -> stop() -> STOPPED -> start() ...
    The scheduler calls tick() while STARTED and sleeps for the returned delay.

    The in-flight day set lives as long as a STARTED period: start() always
    begins with an empty one.
    """

    name = "dayfill"
    description = "Incrementally backfills missing days of candle history from a historical data source."
    supported_data_types: tuple[str, ...] = (CANDLES,)
    is_support_historical_data = True
    icon = None

    def __init__(
        self,
        *,
        settings: TaskSettingsBag,
        source: HistorySource,
        storage_factory: StorageFactory,
        default_drive: LocalMarketDataDrive,
        securities: Sequence[Instrument] = (),
        is_new: bool = False,
        today: Callable[[], date] = local_today,
    ):
        self._source = source
        self._storage_factory = storage_factory
        self._default_drive = default_drive
        self._today = today

        self.securities: list[Instrument] = list(securities)
        self.new_securities = NewSecuritiesEvent()

        self._selected: list[Instrument] = []
        self._stop_requested = False
        self.last_report: Optional[TickReport] = None
        self.state = TaskState.CONFIGURED

        self.settings = self.apply_settings(settings, is_new)
        self._tracker = GapTracker(scope=self.settings.skip_scope)

    # ---- settings

    def apply_settings(self, bag: TaskSettingsBag, is_new: bool) -> TaskSettings:
        settings = TaskSettings(bag)
        settings.apply_defaults(is_new)
        self.settings = settings
        self._source.dump_folder = self.temp_path()
        return settings

    def save_settings(self) -> TaskSettingsBag:
        self._source.dump_folder = self.temp_path()
        return self.settings.bag

    @property
    def drive(self) -> LocalMarketDataDrive:
        return self.settings.drive or self._default_drive

    def temp_path(self) -> Path:
        return resolve_temp_folder(self.drive)

    # ---- lifecycle

    @property
    def tracker(self) -> GapTracker:
        return self._tracker

    @property
    def working_set(self) -> list[Instrument]:
        return list(self._selected)

    async def start(self) -> None:
        if self.state is TaskState.STARTED:
            raise RuntimeError(f"Task {self.name!r} is already started")

        self._selected = await select_working_set(self.securities, self._source.list_discoverable_instruments)
        self._tracker = GapTracker(scope=self.settings.skip_scope)
        self._stop_requested = False
        self.state = TaskState.STARTED

        logger.info(
            "Task {} started instruments={} skip_scope={} interval={}",
            self.name,
            len(self._selected),
            self._tracker.scope,
            self.settings.interval,
        )

    def stop(self) -> None:
        if self.state is TaskState.STOPPED:
            return
        self._stop_requested = True
        self.state = TaskState.STOPPED
        logger.info("Task {} stopped", self.name)

    def can_process(self) -> bool:
        return self.state is TaskState.STARTED and not self._stop_requested

    async def tick(self) -> timedelta:
        if self.state is not TaskState.STARTED:
            raise RuntimeError(f"Task {self.name!r} cannot tick in state {self.state.value}")

        loop = SyncLoop(
            source=self._source,
            storage=self._storage_factory(self.drive),
            tracker=self._tracker,
            planner=DateWindowPlanner(self.settings, today=self._today),
            can_process=self.can_process,
            retry_failed_days=self.settings.retry_failed_days,
        )
        self.last_report = await loop.run(self._selected)
        return self.settings.interval

    # ---- securities

    def validate_security_info(self) -> list[Instrument]:
        kept, removed = drop_zero_price_step(self.securities)
        for i in removed:
            logger.warning("Instrument {} has zero price step - its data cannot be saved", i.id)
        self.securities = kept
        return removed

    async def lookup_securities(self, criteria: Optional[str] = None) -> list[Instrument]:
        found = await self._source.list_discoverable_instruments()
        if criteria:
            needle = criteria.strip().upper()
            found = [i for i in found if needle in i.id.upper()]
        self.new_securities.fire(self, found)
        return found
