from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from ..config import get_settings


def venue_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().venue_timezone)


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utc_naive_to_local(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(venue_tz())


def local_to_utc_naive(day: date, at: time) -> datetime:
    """Interpret `day` + `at` as venue-local wall time and return naive UTC."""
    return to_utc_naive(datetime.combine(day, at, tzinfo=venue_tz()))
