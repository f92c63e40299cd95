from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator

_EPOCH_DATE = date(1970, 1, 1)
_DAY_MS = 86_400_000


def dt_to_ms(dt: datetime) -> int:
    """Naive datetimes are taken as UTC wall-clock, aware ones are converted."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return int(dt.timestamp() * 1000)


def ms_to_date(ts_ms: int) -> date:
    return _EPOCH_DATE + timedelta(days=ts_ms // _DAY_MS)


def today() -> date:
    # Host local date; no timezone conversion.
    return date.today()


def parse_date(v: date | datetime | str) -> date:
    """
    Accepts:
      - date / datetime objects
      - 2001-01-01
      - 2001-01-01T10:00:00Z, 2001-01-01 10:00:00+00:00 (time part dropped)
    """
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    ss = str(v).strip()
    if not ss:
        raise ValueError("empty date string")
    if "T" in ss or " " in ss:
        if ss.endswith("Z"):
            ss = ss[:-1] + "+00:00"
        return datetime.fromisoformat(ss).date()
    return date.fromisoformat(ss)


def day_bounds(d: date) -> tuple[datetime, datetime]:
    """Single calendar day as [d 00:00:00, d 23:59:59]."""
    start = datetime.combine(d, time.min)
    end = start + timedelta(hours=23, minutes=59, seconds=59)
    return start, end


def iter_days(start: date, end: date) -> Iterator[date]:
    """Inclusive ascending; yields nothing when start > end."""
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)
