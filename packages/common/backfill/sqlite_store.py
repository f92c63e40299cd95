from __future__ import annotations

import sqlite3
from datetime import date
from pathlib import Path
from typing import Sequence

from loguru import logger

from packages.common.datetime_utils import ms_to_date
from packages.common.timeframes import timeframe_to_ms
from packages.common.types import Instrument, LocalMarketDataDrive
from packages.common.backfill.types import OHLCV

DB_FILE_NAME = "candles.sqlite"
_DAY_MS = 86_400_000


def _bars_table(tf: str) -> str:
    timeframe_to_ms(tf)  # only validated timeframes become table names
    return f"bars_{tf.strip()}"


def ensure_bars_table(conn: sqlite3.Connection, tf: str) -> None:
    t = _bars_table(tf)
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {t} (
          symbol TEXT NOT NULL,
          ts_ms INTEGER NOT NULL,
          open REAL NOT NULL,
          high REAL NOT NULL,
          low REAL NOT NULL,
          close REAL NOT NULL,
          volume REAL NOT NULL,
          PRIMARY KEY (symbol, ts_ms)
        );
        """
    )
    conn.commit()


def upsert_tf(conn: sqlite3.Connection, tf: str, symbol: str, rows: Sequence[OHLCV]) -> int:
    ensure_bars_table(conn, tf)
    t = _bars_table(tf)
    cur = conn.executemany(
        f"""
        INSERT INTO {t} (symbol, ts_ms, open, high, low, close, volume)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(symbol, ts_ms) DO UPDATE SET
          open=excluded.open,
          high=excluded.high,
          low=excluded.low,
          close=excluded.close,
          volume=excluded.volume
        """,
        [(symbol, int(r.ts_ms), r.open, r.high, r.low, r.close, r.volume) for r in rows],
    )
    return cur.rowcount


def get_days_tf(conn: sqlite3.Connection, tf: str, symbol: str) -> set[date]:
    """Distinct UTC days holding at least one bar."""
    ensure_bars_table(conn, tf)
    t = _bars_table(tf)
    rows = conn.execute(
        f"SELECT DISTINCT ts_ms / {_DAY_MS} FROM {t} WHERE symbol=?",
        (symbol,),
    ).fetchall()
    return {ms_to_date(int(r[0]) * _DAY_MS) for r in rows}


class SqliteCandleStorage:
    """
    One bars_<tf> table per timeframe, keyed by (symbol, ts_ms).
    A day counts as persisted once any bar with an open time inside it exists.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def get_persisted_dates(self, instrument: Instrument, timeframe: str) -> set[date]:
        conn = self._connect()
        try:
            return get_days_tf(conn, timeframe, instrument.id)
        finally:
            conn.close()

    def persist(self, instrument: Instrument, timeframe: str, candles: Sequence[OHLCV]) -> int:
        if not candles:
            return 0
        conn = self._connect()
        try:
            wrote = upsert_tf(conn, timeframe, instrument.id, candles)
            conn.commit()
        finally:
            conn.close()
        logger.debug("Upserted {} bars tf={} symbol={}", wrote, timeframe, instrument.id)
        return wrote


def storage_for_drive(drive: LocalMarketDataDrive) -> SqliteCandleStorage:
    return SqliteCandleStorage(Path(drive.path) / DB_FILE_NAME)
