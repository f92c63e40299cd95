from __future__ import annotations

import re
from datetime import timedelta

_TIMEFRAME_RE = re.compile(r"^(\d+)([smhdw])$")

_UNIT_MS = {
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
    "w": 604_800_000,
}


def timeframe_to_ms(tf: str) -> int:
    m = _TIMEFRAME_RE.match(tf.strip())
    if not m:
        raise ValueError(f"Invalid timeframe: {tf!r} (expected e.g. '1m', '5m', '1h', '1d')")

    n = int(m.group(1))
    if n <= 0:
        raise ValueError(f"Invalid timeframe: {tf!r} (count must be positive)")
    return n * _UNIT_MS[m.group(2)]


def timeframe_to_timedelta(tf: str) -> timedelta:
    return timedelta(milliseconds=timeframe_to_ms(tf))


def timedelta_to_timeframe(td: timedelta) -> str:
    """Largest unit that divides evenly: 1 day -> "1d", 90 min -> "90m"."""
    ms = int(td.total_seconds() * 1000)
    if ms <= 0 or ms % 1_000:
        raise ValueError(f"Cannot express {td!r} as a timeframe")
    for unit in ("w", "d", "h", "m", "s"):
        if ms % _UNIT_MS[unit] == 0:
            return f"{ms // _UNIT_MS[unit]}{unit}"
    raise ValueError(f"Cannot express {td!r} as a timeframe")


def timeframe_minutes(tf: str) -> float:
    return timeframe_to_ms(tf) / 60_000


def format_timeframe_minutes(tf: str) -> str:
    """
    Minutes rendered without a trailing '.0':
      1d -> "1440", 1h -> "60", 30s -> "0.5"
    """
    return f"{timeframe_minutes(tf):g}"
