"""
Timezone normalization.

Appointment times arrive as client wall-clock strings and are stored as naive
UTC datetimes. ``to_canonical`` and ``from_canonical`` are the only two places
where that conversion happens.
"""
from datetime import datetime
from typing import Optional, Union

import pytz

from .config import settings
from .exceptions import InvalidRequestError

DEFAULT_TIMEZONE = settings.DEFAULT_TIMEZONE


def is_valid_timezone(tz: Optional[str]) -> bool:
    return bool(tz) and tz in pytz.all_timezones_set


def get_zone(tz: Optional[str] = None):
    """Resolve a zone identifier, falling back to the default only when none is given."""
    if tz is None or tz == "":
        return pytz.timezone(DEFAULT_TIMEZONE)
    if not is_valid_timezone(tz):
        raise InvalidRequestError(f"Unknown timezone: {tz}")
    return pytz.timezone(tz)


def parse_datetime(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise InvalidRequestError(f"Invalid ISO 8601 datetime: {value}")


def to_canonical(local: Union[str, datetime], tz: Optional[str] = None) -> datetime:
    """
    Convert a client timestamp to a timezone-aware UTC datetime.

    Naive values are read as wall-clock time in ``tz``; values that already
    carry an offset keep it.
    """
    zone = get_zone(tz)
    value = parse_datetime(local)

    if value.tzinfo is None:
        value = zone.localize(value)

    return value.astimezone(pytz.utc)


def to_storage(local: Union[str, datetime], tz: Optional[str] = None) -> datetime:
    """Canonical instant as the naive UTC value the database columns hold."""
    return to_canonical(local, tz).replace(tzinfo=None)


def from_canonical(instant: datetime, tz: Optional[str] = None) -> str:
    """Render a stored UTC instant as an ISO string in ``tz``."""
    return localize_instant(instant, tz).isoformat()


def localize_instant(instant: datetime, tz: Optional[str] = None) -> datetime:
    zone = get_zone(tz)
    if instant.tzinfo is None:
        instant = pytz.utc.localize(instant)
    return instant.astimezone(zone)


def format_in_zone(instant: datetime, tz: Optional[str] = None, fmt: Optional[str] = None) -> str:
    local = localize_instant(instant, tz)
    return local.strftime(fmt) if fmt else local.isoformat()


def now_in_zone(tz: Optional[str] = None) -> str:
    return datetime.now(pytz.utc).astimezone(get_zone(tz)).isoformat()
