from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta

from ..core.exceptions import ValidationError


def now_utc() -> datetime:
    """Current UTC time as a naive datetime (the database stores naive UTC).

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str, *, field_name: str = "date") -> datetime:
    """Parse an ISO-8601 date or datetime; aware values are converted to naive UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid date format for {field_name}", fields=[field_name])
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def optional_datetime(value: Optional[str], *, field_name: str) -> Optional[datetime]:
    if value is None or not str(value).strip():
        return None
    return parse_iso_datetime(str(value), field_name=field_name)


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max)


def start_of_week(moment: datetime) -> datetime:
    """Weeks start on Sunday."""
    days_since_sunday = (moment.weekday() + 1) % 7
    return start_of_day(moment) - timedelta(days=days_since_sunday)


def end_of_week(moment: datetime) -> datetime:
    return start_of_week(moment) + timedelta(days=7) - timedelta(microseconds=1)


def start_of_month(moment: datetime) -> datetime:
    return start_of_day(moment).replace(day=1)


def end_of_month(moment: datetime) -> datetime:
    return start_of_month(moment) + relativedelta(months=1) - timedelta(microseconds=1)


def day_of_week(moment: datetime) -> int:
    """1 = Sunday ... 7 = Saturday."""
    return (moment.weekday() + 1) % 7 + 1


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, halves rounded up."""
    millis = (end - start) / timedelta(milliseconds=1)
    return math.floor(millis / 60000 + 0.5)


def age_in_years(date_of_birth: date, *, today: Optional[date] = None) -> int:
    today = today or now_utc().date()
    return int((today - date_of_birth).days // 365.25)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"
