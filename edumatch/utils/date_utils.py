"""
Date Utility - display/database date conversion and timezone helpers.

Dates travel in two string shapes:
- DD/MM/YYYY for display and form input
- YYYY-MM-DD for storage and the API

All timestamps are stored in UTC; the timezone helpers convert them for a
user's IANA zone (e.g. "Asia/Ho_Chi_Minh").
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "UTC"

DateLike = Union[str, date, datetime]


# ============================================================
# DISPLAY <-> DATABASE
# ============================================================

def format_date_for_display(date_string: Optional[str]) -> str:
    """
    Convert YYYY-MM-DD to DD/MM/YYYY.

    Empty input gives "Not provided"; strings that already contain "/" or
    that do not parse are returned unchanged.
    """
    if not date_string:
        return "Not provided"

    if "/" in date_string:
        return date_string

    try:
        parsed = datetime.strptime(date_string[:10], "%Y-%m-%d")
    except ValueError:
        return date_string

    return _display(parsed)


def format_date_for_database(date_string: Optional[str]) -> str:
    """
    Convert DD/MM/YYYY to YYYY-MM-DD.

    Strings already in YYYY-MM-DD form are returned unchanged; anything
    malformed gives "".
    """
    if not date_string:
        return ""

    if "-" in date_string and "/" not in date_string:
        return date_string

    parts = date_string.split("/")
    if len(parts) != 3:
        return ""

    day, month, year = parts
    try:
        parsed = date(int(year), int(month), int(day))
    except ValueError:
        return ""

    return parsed.isoformat()


def format_date_to_ddmmyyyy(value: Optional[DateLike]) -> str:
    if not value:
        return ""
    parsed = _to_date(value)
    if parsed is None:
        return ""
    return _display(parsed)


def calculate_days_left(date_string: Optional[DateLike], today: Optional[date] = None) -> int:
    """
    Whole calendar days from today until the given date.

    Time-of-day is ignored on both sides. Past or unparseable dates give 0.
    """
    if not date_string:
        return 0

    target = _to_date(date_string)
    if target is None:
        return 0

    today = today or date.today()
    return max(0, (target - today).days)


def _display(value: date) -> str:
    # strftime("%Y") does not zero-pad years below 1000 on every platform
    return f"{value.day:02d}/{value.month:02d}/{value.year:04d}"


def _to_date(value: DateLike) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = value.strip()
    if "/" in text:
        text = format_date_for_database(text)
        if not text:
            return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


# ============================================================
# TIMEZONE HELPERS
# ============================================================

def get_zone(tz_name: Optional[str] = None) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def _parse_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        if not value:
            raise ValueError("Date is required")
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))

    # Naive timestamps are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_to_local(utc_value: DateLike, tz_name: Optional[str] = None) -> datetime:
    """Convert a UTC timestamp to an aware datetime in the given zone."""
    return _parse_datetime(utc_value).astimezone(get_zone(tz_name))


def local_to_utc(local_value: DateLike, tz_name: Optional[str] = None) -> datetime:
    """Interpret a naive local timestamp in tz_name and convert it to UTC."""
    if isinstance(local_value, str):
        parsed = datetime.fromisoformat(local_value.strip().replace("Z", "+00:00"))
    elif isinstance(local_value, datetime):
        parsed = local_value
    else:
        parsed = datetime(local_value.year, local_value.month, local_value.day)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=get_zone(tz_name))
    return parsed.astimezone(timezone.utc)


def format_utc_date_to_local(utc_value: Optional[DateLike], tz_name: Optional[str] = None,
                             fmt: str = "%d/%m/%Y") -> str:
    if not utc_value:
        return ""
    try:
        return utc_to_local(utc_value, tz_name).strftime(fmt)
    except ValueError:
        return "Invalid date"


def format_utc_datetime_to_local(utc_value: Optional[DateLike], tz_name: Optional[str] = None) -> str:
    return format_utc_date_to_local(utc_value, tz_name, fmt="%d/%m/%Y %H:%M")


def format_utc_relative_time(utc_value: Optional[DateLike], tz_name: Optional[str] = None,
                             now: Optional[datetime] = None) -> str:
    """
    Human relative time: "Just now", "5m ago", "3h ago", "2d ago", else the
    local date.
    """
    if not utc_value:
        return "Unknown time"

    try:
        moment = _parse_datetime(utc_value)
    except ValueError:
        return "Invalid date"

    now = _parse_datetime(now) if now else datetime.now(timezone.utc)
    seconds = int((now - moment).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return format_utc_date_to_local(moment, tz_name)


def ensure_utc(value: Optional[DateLike]) -> Optional[str]:
    """ISO-8601 UTC string for storage, or None when empty/invalid."""
    if not value:
        return None
    try:
        return _parse_datetime(value).astimezone(timezone.utc).isoformat()
    except ValueError:
        return None


def get_timezone_offset(tz_name: Optional[str] = None, at: Optional[datetime] = None) -> int:
    """Offset of the zone from UTC in minutes at the given moment."""
    moment = _parse_datetime(at) if at else datetime.now(timezone.utc)
    offset = moment.astimezone(get_zone(tz_name)).utcoffset() or timedelta(0)
    return int(offset.total_seconds() // 60)
