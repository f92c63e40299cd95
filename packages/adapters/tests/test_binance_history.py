# packages/adapters/tests/test_binance_history.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import aiohttp
import pytest

from packages.common.config import SecurityConfig
from packages.common.datetime_utils import day_bounds, dt_to_ms, ms_to_date
from packages.common.types import Instrument, time_frame_args
from packages.common.backfill.types import HistoryFetchError
from packages.common.backfill.dump_files import candles_dump_path
from packages.common.backfill.gap_tracker import GapTracker
from packages.common.backfill.planner import DateWindowPlanner
from packages.common.backfill.service import SyncLoop
from packages.adapters.binance_spot import history
from packages.adapters.binance_spot.history import (
    BinanceSpotHistorySource,
    parse_exchange_info,
    parse_klines,
    symbol_to_binance,
)

HOUR_MS = 3_600_000
DAY = date(2024, 3, 10)
DAY_MS = dt_to_ms(datetime(2024, 3, 10))


def _row(ts: int) -> list[Any]:
    return [ts, "1.0", "2.0", "0.5", "1.5", "10", ts + HOUR_MS - 1, "0", 1, "0", "0", "0"]


BTC = Instrument(id="BTC/USDT", price_step=Decimal("0.01"), candle_args=time_frame_args(["1h"]))


def test_symbol_and_kline_parsing():
    assert symbol_to_binance("btc/usdt") == "BTCUSDT"

    bars = parse_klines([_row(DAY_MS + HOUR_MS), _row(DAY_MS)])
    assert [b.ts_ms for b in bars] == [DAY_MS, DAY_MS + HOUR_MS]
    assert bars[0].close == 1.5
    assert bars[0].volume == 10.0


def test_exchange_info_keeps_trading_symbols_with_tick_size():
    data = {
        "symbols": [
            {
                "status": "TRADING",
                "baseAsset": "BTC",
                "quoteAsset": "USDT",
                "filters": [{"filterType": "PRICE_FILTER", "tickSize": "0.01000000"}],
            },
            {"status": "BREAK", "baseAsset": "OLD", "quoteAsset": "USDT", "filters": []},
            {"status": "TRADING", "baseAsset": "ETH", "quoteAsset": "BTC", "filters": []},
        ]
    }

    everything = parse_exchange_info(data, ["1d"])
    assert [i.id for i in everything] == ["BTC/USDT", "ETH/BTC"]
    assert everything[0].price_step == Decimal("0.01")
    assert everything[1].price_step == 0
    assert everything[0].timeframes() == ["1d"]

    usdt_only = parse_exchange_info(data, ["1d"], quote_assets=["usdt"])
    assert [i.id for i in usdt_only] == ["BTC/USDT"]


def test_fetch_candles_paginates_and_dumps(tmp_path: Path):
    src = BinanceSpotHistorySource(page_limit=2, dump_folder=tmp_path)
    pages = {
        str(DAY_MS): [_row(DAY_MS), _row(DAY_MS + HOUR_MS)],
        str(DAY_MS + 2 * HOUR_MS): [_row(DAY_MS + 2 * HOUR_MS)],
    }
    seen: List[dict] = []

    async def fake_get_json(path: str, params: Optional[dict] = None):
        assert path == "/api/v3/klines"
        seen.append(dict(params or {}))
        return pages[params["startTime"]]

    src._get_json = fake_get_json  # type: ignore[method-assign]
    start, end = day_bounds(DAY)

    bars = asyncio.run(src.fetch_candles(BTC, start, end, "1h"))

    assert [b.ts_ms for b in bars] == [DAY_MS, DAY_MS + HOUR_MS, DAY_MS + 2 * HOUR_MS]
    assert [p["startTime"] for p in seen] == [str(DAY_MS), str(DAY_MS + 2 * HOUR_MS)]
    assert seen[0]["symbol"] == "BTCUSDT"
    assert seen[0]["endTime"] == str(DAY_MS + 86_400_000 - 1)

    dump = candles_dump_path(tmp_path, "BTC/USDT", DAY, DAY, "1h")
    assert dump.read_text().count("\n") == 3


def test_empty_day_writes_no_dump(tmp_path: Path):
    src = BinanceSpotHistorySource(dump_folder=tmp_path)

    async def fake_get_json(path: str, params: Optional[dict] = None):
        return []

    src._get_json = fake_get_json  # type: ignore[method-assign]
    start, end = day_bounds(DAY)

    assert asyncio.run(src.fetch_candles(BTC, start, end, "1d")) == []
    assert not candles_dump_path(tmp_path, "BTC/USDT", DAY, DAY, "1d").exists()


def test_unsupported_timeframe_is_a_fetch_failure():
    src = BinanceSpotHistorySource()
    start, end = day_bounds(DAY)
    with pytest.raises(HistoryFetchError):
        asyncio.run(src.fetch_candles(BTC, start, end, "7m"))


@dataclass
class _Window:
    offset: int = 1
    start_from: date = date(2001, 1, 1)
    redownload: bool = False


@dataclass
class _MemoryStorage:
    persisted: Dict[Tuple[str, str], Set[date]] = field(default_factory=dict)

    def get_persisted_dates(self, instrument, timeframe):
        return set(self.persisted.get((instrument.id, timeframe), set()))

    def persist(self, instrument, timeframe, candles):
        self.persisted.setdefault((instrument.id, timeframe), set()).update(ms_to_date(c.ts_ms) for c in candles)
        return len(candles)


def test_unsupported_timeframe_does_not_block_later_instruments(tmp_path: Path):
    aaa = SecurityConfig(id="AAA/USDT", price_step="0.01", timeframes=["7m"]).to_instrument()
    btc = SecurityConfig(id="BTC/USDT", price_step="0.01", timeframes=["1d"]).to_instrument()

    src = BinanceSpotHistorySource(dump_folder=tmp_path)
    requested: List[str] = []

    async def fake_get_json(path: str, params: Optional[dict] = None):
        requested.append(params["symbol"])
        if int(params["startTime"]) == DAY_MS:
            return [_row(DAY_MS)]
        return []

    src._get_json = fake_get_json  # type: ignore[method-assign]
    storage = _MemoryStorage()
    loop = SyncLoop(
        source=src,
        storage=storage,
        tracker=GapTracker(),
        planner=DateWindowPlanner(_Window(), today=lambda: DAY),
        can_process=lambda: True,
    )

    report = asyncio.run(loop.run([aaa, btc]))

    assert set(requested) == {"BTCUSDT"}
    assert [(r.instrument_id, r.timeframe) for r in report.failed] == [("AAA/USDT", "7m")] * 2
    assert storage.persisted[("BTC/USDT", "1d")] == {DAY}
    assert not report.cancelled


class _FailingRequest:
    async def __aenter__(self):
        raise aiohttp.ClientConnectionError("connection refused")

    async def __aexit__(self, *exc):
        return False


class _FailingSession:
    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url, params=None):
        return _FailingRequest()


def test_transport_failure_surfaces_as_history_fetch_error(monkeypatch):
    monkeypatch.setattr(history.aiohttp, "ClientSession", _FailingSession)
    src = BinanceSpotHistorySource(max_retries=1)
    start, end = day_bounds(DAY)

    with pytest.raises(HistoryFetchError):
        asyncio.run(src.fetch_candles(BTC, start, end, "1d"))
