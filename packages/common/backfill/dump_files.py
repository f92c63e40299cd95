from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional

from loguru import logger

from packages.common.constants import TEMP_FOLDER_NAME
from packages.common.timeframes import format_timeframe_minutes
from packages.common.types import LocalMarketDataDrive


def _safe_id(instrument_id: str) -> str:
    # "BTC/USDT" would otherwise nest a directory
    return instrument_id.replace("/", "_").replace("\\", "_")


def candles_dump_path(folder: Path, instrument_id: str, begin: date, end: date, timeframe: str) -> Path:
    """
    <folder>/<id>/candles_<minutes>m_<YYYY>_<MM>_<DD>_<YYYY>_<MM>_<DD>.txt
    """
    name = (
        f"candles_{format_timeframe_minutes(timeframe)}m_"
        f"{begin.year:04d}_{begin.month:02d}_{begin.day:02d}_"
        f"{end.year:04d}_{end.month:02d}_{end.day:02d}.txt"
    )
    return Path(folder) / _safe_id(instrument_id) / name


def delete_candles_dump(
    folder: Optional[Path],
    instrument_id: str,
    begin: date,
    end: date,
    timeframe: str,
) -> bool:
    if folder is None:
        return False
    path = candles_dump_path(folder, instrument_id, begin, end, timeframe)
    if not path.exists():
        return False
    path.unlink()
    logger.debug("Deleted dump file {}", path)
    return True


def resolve_temp_folder(drive: LocalMarketDataDrive) -> Path:
    path = Path(drive.path) / TEMP_FOLDER_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path
