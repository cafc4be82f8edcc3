"""
Date and timezone helpers shared by filters, dashboards and retention.

Parsing functions raise ValueError on malformed input so that request models
can reject it before anything reaches the predicate compiler.
"""

import calendar
import re
from datetime import date, datetime, time, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from utils.config import settings

DateLike = Union[date, datetime]

# Fixed-width, lexicographically ordered UTC text used for every stored timestamp.
DB_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_LEGACY_DATE = re.compile(r"^\d{2}-\d{2}-\d{4}$")


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """
    Resolve a caller-supplied timezone identifier (e.g. an X-Timezone header).

    Args:
        name: IANA zone name; None or blank means the configured default

    Returns:
        ZoneInfo for the zone

    Raises:
        ValueError: If the zone name is unknown
    """
    zone = (name or "").strip() or settings.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {zone}") from e


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    """First instant of `day` in `tz`, expressed in UTC."""
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def end_of_day(day: date, tz: ZoneInfo) -> datetime:
    """Last instant (23:59:59.999999) of `day` in `tz`, expressed in UTC."""
    return datetime.combine(day, time.max, tzinfo=tz).astimezone(timezone.utc)


def minus_months(value: datetime, months: int) -> datetime:
    """
    Subtract calendar months, clamping the day to the target month's length.

    May 31 minus 3 months is Feb 28 (or 29 in leap years).
    """
    total = value.year * 12 + (value.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def minus_years(value: datetime, years: int) -> datetime:
    """Subtract calendar years (Feb 29 clamps to Feb 28)."""
    return minus_months(value, years * 12)


def parse_flexible_date(value: str) -> DateLike:
    """
    Parse a date or datetime string.

    Supported formats:
    - ISO date: "2024-01-01" -> date
    - ISO datetime: "2024-01-01T10:30:00" -> naive datetime (read as UTC later)
    - ISO instant: "2024-01-01T10:30:00Z" / "+02:00" -> aware datetime
    - Legacy: "01-01-2024" (dd-MM-yyyy) -> date

    Date-only input stays a date so that range filters can widen it to whole days.

    Raises:
        ValueError: If the string matches none of the formats
    """
    text = value.strip()
    if not text:
        raise ValueError("Empty date string")

    if _ISO_DATE.match(text):
        return date.fromisoformat(text)

    if _LEGACY_DATE.match(text):
        return datetime.strptime(text, "%d-%m-%Y").date()

    if "T" in text:
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            pass

    raise ValueError(
        f"Invalid date/time format: '{value}'. Expected: yyyy-MM-dd, "
        "yyyy-MM-ddTHH:mm:ss, yyyy-MM-ddTHH:mm:ssZ, or dd-MM-yyyy"
    )


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime to the stored UTC text form."""
    return ensure_utc(value).strftime(DB_TIMESTAMP_FORMAT)
