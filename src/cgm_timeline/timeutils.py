"""Time helpers shared by the pipeline stages.

All instants are handled as timezone-aware datetimes. The canonical string form
is ``YYYY-MM-DDTHH:MM:SS.sssZ`` so that ISO strings sort lexicographically in
time order.
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

from dateutil import tz
from dateutil.parser import isoparse

from cgm_timeline.interface.timeline_interface import UTC_TIMEZONE

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

LOCAL_DATE_FORMAT = "%Y-%m-%d"
LOCAL_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

_EPOCH = datetime(1970, 1, 1, tzinfo=tz.UTC)

# Instants closer than this to the datetime limits cannot be widened to days and weeks
SUPPORTED_MARGIN = timedelta(days=31)
MIN_INSTANT = (datetime.min + SUPPORTED_MARGIN).replace(tzinfo=tz.UTC)
MAX_INSTANT = (datetime.max - SUPPORTED_MARGIN).replace(tzinfo=tz.UTC)


def parse_instant(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 string; naive values are read as UTC.

    Returns:
        Aware datetime, or None if the string cannot be parsed
    """
    try:
        parsed = isoparse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz.UTC)
    return parsed


def check_supported(moment: datetime) -> datetime:
    """Return an aware instant unchanged, or raise OverflowError near the datetime limits."""
    if not MIN_INSTANT <= moment <= MAX_INSTANT:
        raise OverflowError(f"{moment.isoformat()} is outside the supported range")
    return moment


def to_iso_utc(moment: datetime) -> str:
    """Format a datetime as a UTC ISO-8601 string with milliseconds (naive means UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz.UTC)
    utc = moment.astimezone(tz.UTC)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def resolve_timezone(name: object) -> Optional[tzinfo]:
    """Look up an IANA timezone name.

    Returns:
        tzinfo, or None for a missing, empty or unknown name
    """
    if not isinstance(name, str) or name == "":
        return None
    if name == UTC_TIMEZONE:
        return tz.UTC
    return tz.gettz(name)


def timezone_or_utc(name: object) -> tzinfo:
    return resolve_timezone(name) or tz.UTC


def localize(normal_time: str, timezone_name: object) -> datetime:
    """Convert a normalTime string to wall clock time in a timezone."""
    instant = parse_instant(normal_time)
    if instant is None:
        raise ValueError(f"Invalid normalTime: {normal_time!r}")
    return instant.astimezone(timezone_or_utc(timezone_name))


def local_date(normal_time: str, timezone_name: object) -> str:
    """Calendar day (YYYY-MM-DD) of an instant in a timezone."""
    return localize(normal_time, timezone_name).strftime(LOCAL_DATE_FORMAT)


def epoch_ms(normal_time: str) -> int:
    instant = parse_instant(normal_time)
    if instant is None:
        raise ValueError(f"Invalid normalTime: {normal_time!r}")
    return (instant - _EPOCH) // timedelta(milliseconds=1)


def ms_since_midnight(moment: datetime) -> int:
    """Milliseconds elapsed since local midnight of a wall clock datetime."""
    return (
        (moment.hour * 3600 + moment.minute * 60 + moment.second) * 1000
        + moment.microsecond // 1000
    )


def add_absolute(moment: datetime, delta: timedelta) -> datetime:
    """Add an elapsed duration (not a wall clock one) to an aware datetime."""
    return (moment.astimezone(tz.UTC) + delta).astimezone(moment.tzinfo)


def iso_week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())
