# hrms_engine/services/tz_calendar.py
"""
Company-local calendar arithmetic.

Every function takes the instant and the IANA zone explicitly; nothing here
reads the process timezone. utcnow() is the only clock read and callers pass
its result down instead of calling it again.
"""
from __future__ import annotations

import calendar as pycal
import re
from collections import namedtuple
from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Tuple

import pytz

DEFAULT_TZ = "Asia/Kolkata"

LocalParts = namedtuple("LocalParts", "year month day hour minute second")

_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_HM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

# residual-correction passes for instant_from_local; offsets change at most
# once around a single DST transition
_MAX_CORRECTION_PASSES = 2


def utcnow() -> datetime:
    return datetime.now(pytz.utc)


def get_tz(tz_name: Optional[str]):
    from hrms_engine.common.errors import ValidationError
    try:
        return pytz.timezone(tz_name or DEFAULT_TZ)
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timezone: {tz_name}")


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a stored instant to aware UTC. Naive values are stored UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def iso_utc(dt: Optional[datetime]) -> Optional[str]:
    dt = as_utc(dt)
    return dt.isoformat() if dt else None


def parts_in_tz(instant: datetime, tz_name: str) -> LocalParts:
    local = as_utc(instant).astimezone(get_tz(tz_name))
    return LocalParts(local.year, local.month, local.day, local.hour, local.minute, local.second)


def local_date(instant: datetime, tz_name: str) -> date:
    p = parts_in_tz(instant, tz_name)
    return date(p.year, p.month, p.day)


def date_string_in_tz(tz_name: str, instant: datetime) -> str:
    """YYYY-MM-DD of the instant as observed in tz_name."""
    return local_date(instant, tz_name).isoformat()


def parse_ymd(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    m = _YMD_RE.match(str(value or "").strip())
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def parse_hm(value) -> Optional[Tuple[int, int]]:
    m = _HM_RE.match(str(value or "").strip())
    if not m:
        return None
    h, mi = int(m.group(1)), int(m.group(2))
    if not (0 <= h <= 23 and 0 <= mi <= 59):
        return None
    return h, mi


def add_minutes_hm(hm: str, minutes: int) -> Optional[str]:
    p = parse_hm(hm)
    if not p:
        return None
    total = p[0] * 60 + p[1] + int(minutes)
    return f"{(total // 60) % 24:02d}:{total % 60:02d}"


def instant_from_local(ymd, hm, tz_name: str) -> Optional[datetime]:
    """
    Convert a local wall-clock "YYYY-MM-DD" + "HH:MM" in tz_name to a UTC instant.

    First guess treats the wall time as UTC; each pass reads the guess back in
    tz_name and shifts it by the residual minutes. A wall time that does not
    exist (DST gap) resolves to a neighbouring valid instant.
    """
    d = parse_ymd(ymd)
    t = parse_hm(hm)
    if d is None or t is None:
        return None

    tz = get_tz(tz_name)
    want = datetime(d.year, d.month, d.day, t[0], t[1])
    guess = pytz.utc.localize(want)

    for _ in range(_MAX_CORRECTION_PASSES):
        local = guess.astimezone(tz)
        got = datetime(local.year, local.month, local.day, local.hour, local.minute)
        diff_minutes = int((want - got).total_seconds() // 60)
        if diff_minutes == 0:
            break
        guess = guess + timedelta(minutes=diff_minutes)

    return guess


def days_in_month(year: int, month: int) -> int:
    return pycal.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def month_range_in_tz(tz_name: str, instant: datetime) -> Tuple[date, date]:
    """First and last day of the month containing instant, in local time."""
    p = parts_in_tz(instant, tz_name)
    return month_bounds(p.year, p.month)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every calendar day in [start, end], inclusive."""
    cur = start
    one = timedelta(days=1)
    while cur <= end:
        yield cur
        cur += one
