# packages/common/tests/test_sqlite_store.py

from __future__ import annotations

import sqlite3
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from packages.common.datetime_utils import dt_to_ms
from packages.common.types import Instrument, LocalMarketDataDrive
from packages.common.backfill.types import OHLCV
from packages.common.backfill.sqlite_store import DB_FILE_NAME, SqliteCandleStorage, storage_for_drive


def _bar(dt: datetime, close: float = 1.0) -> OHLCV:
    return OHLCV(ts_ms=dt_to_ms(dt), open=1.0, high=2.0, low=0.5, close=close, volume=3.0)


def _rows(db_path: Path, tf: str, symbol: str) -> list[tuple[int, float]]:
    conn = sqlite3.connect(str(db_path))
    try:
        return [
            (int(r[0]), float(r[1]))
            for r in conn.execute(f"SELECT ts_ms, close FROM bars_{tf} WHERE symbol=? ORDER BY ts_ms", (symbol,)).fetchall()
        ]
    finally:
        conn.close()


def test_persisted_dates_are_distinct_days(tmp_path: Path):
    btc = Instrument(id="BTC/USDT", price_step=Decimal("0.01"))
    storage = SqliteCandleStorage(tmp_path / "c.sqlite")

    assert storage.get_persisted_dates(btc, "1h") == set()

    storage.persist(
        btc,
        "1h",
        [
            _bar(datetime(2024, 3, 9, 0)),
            _bar(datetime(2024, 3, 9, 23)),
            _bar(datetime(2024, 3, 10, 5)),
        ],
    )

    assert storage.get_persisted_dates(btc, "1h") == {date(2024, 3, 9), date(2024, 3, 10)}
    assert storage.get_persisted_dates(btc, "1d") == set()

    eth = Instrument(id="ETH/USDT", price_step=Decimal("0.01"))
    assert storage.get_persisted_dates(eth, "1h") == set()


def test_persist_overwrites_existing_open_time(tmp_path: Path):
    btc = Instrument(id="BTC/USDT", price_step=Decimal("0.01"))
    storage = SqliteCandleStorage(tmp_path / "c.sqlite")
    t = datetime(2024, 3, 10, 0)

    storage.persist(btc, "1d", [_bar(t, close=1.0)])
    storage.persist(btc, "1d", [_bar(t, close=9.0)])

    rows = _rows(storage.db_path, "1d", "BTC/USDT")
    assert rows == [(dt_to_ms(t), 9.0)]


def test_persist_empty_batch_is_noop(tmp_path: Path):
    btc = Instrument(id="BTC/USDT", price_step=Decimal("0.01"))
    storage = SqliteCandleStorage(tmp_path / "nested" / "c.sqlite")
    assert storage.persist(btc, "1d", []) == 0


def test_storage_for_drive_places_db_under_drive(tmp_path: Path):
    storage = storage_for_drive(LocalMarketDataDrive(tmp_path / "drive"))
    assert storage.db_path == tmp_path / "drive" / DB_FILE_NAME
    assert storage.db_path.parent.is_dir()
