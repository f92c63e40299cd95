from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Sequence, Set

import aiohttp
from loguru import logger

from packages.common.datetime_utils import dt_to_ms
from packages.common.timeframes import timeframe_to_ms
from packages.common.types import Instrument, time_frame_args
from packages.common.backfill.types import OHLCV, HistoryFetchError
from packages.common.backfill.dump_files import candles_dump_path


BINANCE_SUPPORTED_TFS: Set[str] = {
    "1s",
    "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "8h", "12h",
    "1d", "3d", "1w",
}


def symbol_to_binance(symbol: str) -> str:
    return symbol.replace("/", "").upper()


def parse_klines(data: Sequence[Sequence[Any]]) -> list[OHLCV]:
    out: list[OHLCV] = []
    for row in data:
        out.append(
            OHLCV(
                ts_ms=int(row[0]),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
            )
        )
    out.sort(key=lambda x: x.ts_ms)
    return out


def parse_exchange_info(
    data: dict[str, Any],
    timeframes: Sequence[str],
    quote_assets: Sequence[str] = (),
) -> list[Instrument]:
    quotes = {q.upper() for q in quote_assets}
    out: list[Instrument] = []
    for s in data.get("symbols", []):
        if s.get("status") != "TRADING":
            continue
        base = str(s.get("baseAsset", "")).upper()
        quote = str(s.get("quoteAsset", "")).upper()
        if not base or not quote:
            continue
        if quotes and quote not in quotes:
            continue

        tick = Decimal("0")
        for f in s.get("filters", []):
            if f.get("filterType") == "PRICE_FILTER":
                tick = Decimal(str(f.get("tickSize", "0")))
                break

        out.append(
            Instrument(
                id=f"{base}/{quote}",
                price_step=tick,
                candle_args=time_frame_args(timeframes),
            )
        )
    return out


@dataclass
class BinanceSpotHistorySource:
    base_url: str = "https://api.binance.com"
    request_timeout_s: int = 15
    max_retries: int = 5
    page_limit: int = 1000
    default_timeframes: Sequence[str] = ("1d",)
    quote_assets: Sequence[str] = field(default_factory=tuple)
    dump_folder: Optional[Path] = None

    def _validate_tf(self, timeframe: str) -> None:
        if timeframe not in BINANCE_SUPPORTED_TFS:
            raise HistoryFetchError(
                f"Unsupported Binance interval timeframe={timeframe!r}. "
                f"Supported: {sorted(BINANCE_SUPPORTED_TFS)}"
            )

    async def _get_json(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.request_timeout_s)

        last_err: Optional[BaseException] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                async with aiohttp.ClientSession(timeout=timeout) as sess:
                    async with sess.get(url, params=params) as resp:
                        text = await resp.text()
                        if resp.status != 200:
                            raise HistoryFetchError(f"Binance {path} HTTP {resp.status}: {text[:200]}")
                        return await resp.json()

            except (aiohttp.ClientError, asyncio.TimeoutError, HistoryFetchError, ValueError) as e:
                last_err = e
                logger.warning("Binance {} attempt {}/{} failed: {}", path, attempt, self.max_retries, e)
                if attempt < self.max_retries:
                    base = min(2 ** (attempt - 1), 10)
                    await asyncio.sleep(base + random.uniform(0, 0.25))

        raise HistoryFetchError(f"Binance {path} failed after {self.max_retries} attempts") from last_err

    async def fetch_candles(
        self,
        instrument: Instrument,
        start: datetime,
        end: datetime,
        timeframe: str,
    ) -> list[OHLCV]:
        self._validate_tf(timeframe)

        tf_ms = timeframe_to_ms(timeframe)
        start_ms = dt_to_ms(start)
        end_ms = dt_to_ms(end) + 999  # end is inclusive to the second

        raw_rows: list[Sequence[Any]] = []
        by_ts: dict[int, OHLCV] = {}
        cursor = start_ms

        while cursor <= end_ms:
            data = await self._get_json(
                "/api/v3/klines",
                {
                    "symbol": symbol_to_binance(instrument.id),
                    "interval": timeframe,
                    "startTime": str(cursor),
                    "endTime": str(end_ms),
                    "limit": str(self.page_limit),
                },
            )
            if not data:
                break

            raw_rows.extend(data)
            page = parse_klines(data)
            for b in page:
                if start_ms <= b.ts_ms <= end_ms:
                    by_ts[b.ts_ms] = b

            if len(data) < self.page_limit:
                break

            next_cursor = page[-1].ts_ms + tf_ms
            if next_cursor <= cursor:
                logger.warning("Klines cursor did not advance (cursor={} last_ts={}) - stopping", cursor, page[-1].ts_ms)
                break
            cursor = next_cursor

        if raw_rows:
            self._dump(instrument, start, end, timeframe, raw_rows)

        return [by_ts[ts] for ts in sorted(by_ts)]

    def _dump(self, instrument: Instrument, start: datetime, end: datetime, timeframe: str, rows: list[Sequence[Any]]) -> None:
        if self.dump_folder is None:
            return
        path = candles_dump_path(self.dump_folder, instrument.id, start.date(), end.date(), timeframe)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(",".join(str(v) for v in row[:6]) + "\n" for row in rows))

    async def list_discoverable_instruments(self) -> list[Instrument]:
        data = await self._get_json("/api/v3/exchangeInfo")
        if not isinstance(data, dict):
            raise HistoryFetchError("Binance exchangeInfo returned a non-object payload")
        out = parse_exchange_info(data, self.default_timeframes, self.quote_assets)
        logger.info("Binance exchangeInfo -> {} trading instruments", len(out))
        return out
