"""
Clock helpers.

Timestamps are stored in UTC. Every "local" rule (today's date, the
late-submission hour, the late-login cutoff, job schedules) is evaluated in
the configured ``settings.timezone``.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from ..config import settings

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_timezone(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or settings.timezone)


def as_utc(moment: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are already UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def to_local(moment: datetime, tz_name: Optional[str] = None) -> datetime:
    return as_utc(moment).astimezone(get_timezone(tz_name))


def local_date(moment: datetime, tz_name: Optional[str] = None) -> date:
    return to_local(moment, tz_name).date()


def parse_hhmm(value: str) -> time:
    hours, minutes = value.strip().split(":")
    return time(hour=int(hours), minute=int(minutes))


def local_moment(day: date, at: time, tz_name: Optional[str] = None) -> datetime:
    """The aware UTC instant of ``day`` at local wall-clock time ``at``."""
    local = datetime.combine(day, at, tzinfo=get_timezone(tz_name))
    return local.astimezone(timezone.utc)


def is_late_submission(moment: datetime, cutoff_hour: Optional[int] = None, tz_name: Optional[str] = None) -> bool:
    """True when the local hour of ``moment`` is at or after the cutoff hour."""
    if cutoff_hour is None:
        cutoff_hour = settings.late_submission_hour
    return to_local(moment, tz_name).hour >= cutoff_hour


def hours_between(start: Optional[datetime], end: datetime) -> Optional[float]:
    """Elapsed hours rounded to 2 decimals, or None without a start."""
    if start is None:
        return None
    elapsed = as_utc(end) - as_utc(start)
    return round(elapsed / timedelta(hours=1), 2)
