# packages/common/tests/test_config.py

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from packages.common.config import load_dayfill_config, save_task_settings
from packages.common.types import LocalMarketDataDrive

CONFIG = """
source:
  default_timeframes: ["1d", "1h", "1d"]
  quote_assets: ["USDT"]
data:
  default_drive: /var/dayfill
securities:
  - id: " btc/usdt "
    price_step: "0.01"
    timeframes: ["1d", "1h"]
  - id: ZERO
    price_step: 0
    timeframes: ["1d"]
"""


def test_load_config_without_task_section_is_new(tmp_path: Path):
    path = tmp_path / "dayfill.yaml"
    path.write_text(CONFIG)

    cfg = load_dayfill_config(path)

    assert cfg.is_new_task
    assert cfg.source.default_timeframes == ["1d", "1h"]
    assert cfg.default_drive() == LocalMarketDataDrive(Path("/var/dayfill"))

    btc, zero = cfg.instruments()
    assert btc.id == "BTC/USDT"
    assert btc.price_step == Decimal("0.01")
    assert btc.timeframes() == ["1d", "1h"]
    assert btc.has_candles()
    assert zero.price_step == 0
    assert not cfg.wants_all_securities()


def test_invalid_timeframe_rejected(tmp_path: Path):
    path = tmp_path / "dayfill.yaml"
    path.write_text("securities:\n  - id: BTC/USDT\n    timeframes: ['1q']\n")
    with pytest.raises(ValidationError):
        load_dayfill_config(path)


def test_missing_config_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_dayfill_config(tmp_path / "nope.yaml")


def test_save_task_settings_keeps_other_sections(tmp_path: Path):
    path = tmp_path / "dayfill.yaml"
    path.write_text(CONFIG)

    save_task_settings(
        path,
        interval=timedelta(days=1),
        drive=None,
        extension_info={"Offset": 1, "StartFrom": date(2001, 1, 1), "ReDownLoad": False},
    )

    raw = yaml.safe_load(path.read_text())
    assert raw["source"]["quote_assets"] == ["USDT"]
    assert raw["task"]["interval"] == "1d"

    cfg = load_dayfill_config(path)
    assert not cfg.is_new_task
    assert cfg.task.interval_timedelta() == timedelta(days=1)
    assert cfg.task.extension_info["StartFrom"] == date(2001, 1, 1)
