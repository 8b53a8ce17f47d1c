"""
Date and Time utilities

XMLTV timestamp parsing and display formatting. Every datetime handled by the
pipeline is timezone-aware UTC.
"""
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo
import logging
import re


logger = logging.getLogger(__name__)

_XMLTV_TIME_RE = re.compile(
    r"(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})\s*([+-]\d{4})?"
)


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_xmltv_time(time_str: str | None) -> datetime | None:
    """
    Convert XMLTV time format to a UTC datetime

    Args:
        time_str: XMLTV time like '20240115183000 +0100'

    Returns:
        Timezone-aware datetime in UTC, or None when the value is absent or
        does not look like an XMLTV timestamp

    Raises:
        DateFormatError: If the digits do not form a valid calendar date
    """
    if not time_str:
        return None

    match = _XMLTV_TIME_RE.match(time_str.strip())
    if not match:
        return None

    year, month, day, hour, minute, second, tz_part = match.groups()

    try:
        dt = datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second),
            tzinfo=timezone.utc,
        )
    except ValueError as e:
        raise DateFormatError(f"Invalid XMLTV timestamp: '{time_str}'") from e

    if tz_part:
        # Offset sign covers the minutes too: -0130 is 90 minutes behind UTC
        tz_sign = 1 if tz_part[0] == '+' else -1
        tz_hours = int(tz_part[1:3])
        tz_mins = int(tz_part[3:5])
        dt -= timedelta(minutes=tz_sign * (tz_hours * 60 + tz_mins))

    return dt


def format_time(value: datetime, target_tz: str = "UTC") -> str:
    """Render a UTC datetime as HH:MM in the target timezone."""
    if target_tz != "UTC":
        value = value.astimezone(ZoneInfo(target_tz))
    return value.strftime("%H:%M")
