from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from cafepos.config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without tzinfo; they were written as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def token_day_zone() -> Optional[tzinfo]:
    """None means the server's local zone."""
    if settings.token_timezone:
        return ZoneInfo(settings.token_timezone)
    return None


def to_local(value: datetime, tz: Optional[tzinfo] = None) -> datetime:
    # astimezone(None) applies the local rules in force at that instant
    return as_utc(value).astimezone(tz or token_day_zone())


def local_date(value: datetime, tz: Optional[tzinfo] = None) -> date:
    return to_local(value, tz).date()


def day_start(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Start of the calendar day containing ``now``, as a UTC timestamp."""
    tz = tz or token_day_zone()
    midnight = datetime.combine(local_date(now, tz), time.min)
    if tz is None:
        return midnight.astimezone(timezone.utc)
    return midnight.replace(tzinfo=tz).astimezone(timezone.utc)
