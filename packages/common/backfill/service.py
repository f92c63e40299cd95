from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Sequence

from loguru import logger

from packages.common.datetime_utils import day_bounds
from packages.common.timeframes import format_timeframe_minutes
from packages.common.types import Instrument

from packages.common.backfill.types import CandleStorage, HistoryFetchError, HistorySource
from packages.common.backfill.gap_tracker import GapTracker
from packages.common.backfill.planner import DateWindowPlanner
from packages.common.backfill.dump_files import delete_candles_dump


@dataclass(frozen=True)
class DayResult:
    instrument_id: str
    timeframe: str
    day: date
    candles: int = 0


@dataclass
class TickReport:
    window: list[date] = field(default_factory=list)
    persisted: list[DayResult] = field(default_factory=list)
    empty: list[DayResult] = field(default_factory=list)
    failed: list[DayResult] = field(default_factory=list)
    instruments_seen: int = 0
    cancelled: bool = False

    @property
    def fetched(self) -> int:
        return len(self.persisted) + len(self.empty) + len(self.failed)


class SyncLoop:
    """
    One tick of the daily gap fill.

    For every instrument and each of its timeframes:
        missing = window - persisted days - in-flight days
    and each missing day is fetched as [d 00:00:00 .. d 23:59:59], oldest first.

    A day is marked in-flight before the fetch and cleared only after its
    candles were persisted. Empty days keep the mark, so they are not asked
    for again until the tracker is reset (task restart).

    can_process() is polled before every instrument, timeframe and day; a
    False answer ends the tick right there. A fetch already running is not
    interrupted.
    """

    def __init__(
        self,
        *,
        source: HistorySource,
        storage: CandleStorage,
        tracker: GapTracker,
        planner: DateWindowPlanner,
        can_process: Callable[[], bool],
        retry_failed_days: bool = False,
    ):
        self._source = source
        self._storage = storage
        self._tracker = tracker
        self._planner = planner
        self._can_process = can_process
        self._retry_failed_days = retry_failed_days

    async def run(self, instruments: Iterable[Instrument]) -> TickReport:
        window = self._planner.plan()
        report = TickReport(window=list(window))

        for instrument in instruments:
            if not self._can_process():
                report.cancelled = True
                return report

            timeframes = instrument.timeframes()
            if not instrument.has_candles() or not timeframes:
                continue

            report.instruments_seen += 1
            logger.info(
                "Available timeframes for {}: {}",
                instrument.id,
                " ".join(format_timeframe_minutes(tf) for tf in timeframes),
            )

            for tf in timeframes:
                if not self._can_process():
                    report.cancelled = True
                    return report

                completed = await self._sync_timeframe(instrument, tf, report.window, report)
                if not completed:
                    report.cancelled = True
                    return report

        if self._can_process():
            logger.info(
                "Iteration finished instruments={} persisted_days={} empty_days={} failed_days={}",
                report.instruments_seen,
                len(report.persisted),
                len(report.empty),
                len(report.failed),
            )
        return report

    def missing_days(self, instrument: Instrument, timeframe: str, window: Sequence[date]) -> list[date]:
        persisted = self._storage.get_persisted_dates(instrument, timeframe)
        in_flight = self._tracker.all_dates(instrument.id, timeframe)
        return [d for d in window if d not in persisted and d not in in_flight]

    async def _sync_timeframe(
        self,
        instrument: Instrument,
        timeframe: str,
        window: Sequence[date],
        report: TickReport,
    ) -> bool:
        missing = self.missing_days(instrument, timeframe, window)
        if not missing:
            logger.info("No unsaved days to load tf={} symbol={}", timeframe, instrument.id)
            return True

        for day in missing:
            if not self._can_process():
                return False
            await self._sync_day(instrument, timeframe, day, report)

        return True

    async def _sync_day(self, instrument: Instrument, timeframe: str, day: date, report: TickReport) -> None:
        self._tracker.mark_in_flight(instrument.id, day, timeframe)
        start, end = day_bounds(day)

        try:
            candles = await self._source.fetch_candles(instrument, start, end, timeframe)
        except HistoryFetchError as e:
            report.failed.append(DayResult(instrument.id, timeframe, day))
            if self._retry_failed_days:
                self._tracker.clear(instrument.id, day, timeframe)
            logger.warning(
                "Fetch failed tf={} day={} symbol={} (retry_next_tick={}): {}",
                timeframe,
                day.isoformat(),
                instrument.id,
                self._retry_failed_days,
                e,
            )
            delete_candles_dump(self._source.dump_folder, instrument.id, day, day, timeframe)
            return

        if candles:
            logger.info(
                "Start loading tf={} day={} symbol={} candles={}",
                timeframe,
                day.isoformat(),
                instrument.id,
                len(candles),
            )
            self._storage.persist(instrument, timeframe, candles)
            self._tracker.clear(instrument.id, day, timeframe)
            report.persisted.append(DayResult(instrument.id, timeframe, day, len(candles)))
        else:
            logger.info(
                "No candles tf={} day={} symbol={} - skipped until restart",
                timeframe,
                day.isoformat(),
                instrument.id,
            )
            report.empty.append(DayResult(instrument.id, timeframe, day))

        delete_candles_dump(self._source.dump_folder, instrument.id, day, day, timeframe)
