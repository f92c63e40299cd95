from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any, List

from loguru import logger

from packages.common.constants import ALL_SECURITIES_ID
from packages.common.config import DayfillConfig, load_dayfill_config, save_task_settings
from packages.common.types import Instrument, LocalMarketDataDrive
from packages.common.backfill.sqlite_store import storage_for_drive
from packages.adapters.binance_spot.history import BinanceSpotHistorySource
from packages.sync_task.scheduler import TaskScheduler
from packages.sync_task.settings import TaskSettingsBag
from packages.sync_task.task import HistorySyncTask


def build_source(cfg: DayfillConfig) -> BinanceSpotHistorySource:
    # Only one source kind today; route on cfg.source.kind when more appear.
    return BinanceSpotHistorySource(
        base_url=cfg.source.base_url,
        request_timeout_s=cfg.source.request_timeout_s,
        max_retries=cfg.source.max_retries,
        page_limit=cfg.source.page_limit,
        default_timeframes=tuple(cfg.source.default_timeframes),
        quote_assets=tuple(cfg.source.quote_assets),
    )


def build_settings_bag(cfg: DayfillConfig) -> TaskSettingsBag:
    if cfg.task is None:
        return TaskSettingsBag()
    return TaskSettingsBag(
        interval=cfg.task.interval_timedelta(),
        drive=LocalMarketDataDrive(Path(cfg.task.drive)) if cfg.task.drive else None,
        extension_info=dict(cfg.task.extension_info),
    )


def build_task(cfg: DayfillConfig) -> HistorySyncTask:
    return HistorySyncTask(
        settings=build_settings_bag(cfg),
        source=build_source(cfg),
        storage_factory=storage_for_drive,
        default_drive=cfg.default_drive(),
        securities=cfg.instruments(),
        is_new=cfg.is_new_task,
    )


def _log_new_securities(sender: Any, securities: List[Instrument]) -> None:
    logger.info("{} discovered {} instruments", getattr(sender, "name", sender), len(securities))
    for i in securities:
        logger.info("  {} price_step={} tfs={}", i.id, i.price_step, i.timeframes())


def _positive_int(v: str) -> int:
    n = int(v)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1 (got {n})")
    return n


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="dayfill syncer (incremental daily candle gap fill)")
    p.add_argument("--config", default="config/dayfill.yaml", help="YAML config path")
    p.add_argument("--once", action="store_true", help="Run a single tick and exit")
    p.add_argument("--max-ticks", type=_positive_int, default=None, help="Exit after this many ticks (>= 1)")
    p.add_argument("--validate-only", action="store_true", help="Validate instruments and exit")
    p.add_argument("--lookup", default=None, nargs="?", const="", help="List source instruments (optional filter) and exit")
    p.add_argument("--save-settings", action="store_true", help="Write applied task settings back to --config")
    return p.parse_args()


async def main_async() -> None:
    args = _parse_args()
    config_path = Path(args.config)

    cfg = load_dayfill_config(config_path)
    task = build_task(cfg)
    task.new_securities.subscribe(_log_new_securities)

    if args.lookup is not None:
        await task.lookup_securities(args.lookup or None)
        return

    if cfg.wants_all_securities():
        logger.info("Instrument {} selected - working set comes from the source catalog", ALL_SECURITIES_ID)

    removed = task.validate_security_info()
    logger.info(
        "Configured instruments={} removed={} drive={}",
        len(task.securities),
        len(removed),
        task.drive,
    )

    if args.save_settings:
        bag = task.save_settings()
        save_task_settings(config_path, interval=bag.interval, drive=bag.drive, extension_info=bag.extension_info)
        logger.info("Task settings written to {}", config_path)

    if args.validate_only:
        return

    scheduler = TaskScheduler(task)
    max_ticks = 1 if args.once else args.max_ticks

    logger.info(
        "Syncer starting offset={} redownload={} start_from={} interval={} max_ticks={}",
        task.settings.offset,
        task.settings.redownload,
        task.settings.start_from,
        task.settings.interval,
        max_ticks or "inf",
    )

    try:
        await scheduler.run(max_ticks=max_ticks)
    finally:
        scheduler.stop()


def main() -> None:
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted.")


if __name__ == "__main__":
    main()
