from __future__ import annotations

from datetime import date, timedelta

# Data kind this task collects.
CANDLES: str = "candles"

# Candle argument kind carrying a timeframe (e.g. "1d").
TIME_FRAME_CANDLE: str = "time_frame"

# Synthetic instrument id meaning "every instrument the source knows".
ALL_SECURITIES_ID: str = "ALL"

DEFAULT_OFFSET_DAYS: int = 1
DEFAULT_START_FROM: date = date(2001, 1, 1)
DEFAULT_INTERVAL: timedelta = timedelta(days=1)

# Stale default from older settings files, upgraded to DEFAULT_INTERVAL on load.
LEGACY_INTERVAL: timedelta = timedelta(seconds=1)

TEMP_FOLDER_NAME: str = "TemporaryFiles"
