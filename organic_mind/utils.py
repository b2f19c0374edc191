from datetime import date, datetime, time, timezone
import logging
import uuid
import zoneinfo

from dateutil import parser as date_parser

from . import config

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def get_zone(tz_name: str | None) -> zoneinfo.ZoneInfo:
    """Resolve an IANA zone name, falling back to the configured default."""
    name = tz_name or config.DEFAULT_TIMEZONE
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown timezone %r; using %s", name, config.DEFAULT_TIMEZONE)
        return zoneinfo.ZoneInfo(config.DEFAULT_TIMEZONE)


def to_wall_clock(dt: datetime, tz_name: str | None = None) -> datetime:
    """Return a naive wall-clock datetime in the given zone.

    Naive inputs are already wall-clock time and are returned unchanged;
    aware inputs are converted first.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(get_zone(tz_name)).replace(tzinfo=None)


def due_wall_clock(dt: datetime, has_time: bool = True, tz_name: str | None = None) -> datetime:
    """Return a stored due value as wall-clock time in ``tz_name``.

    Stored timed values are naive wall-clock time in config.DEFAULT_TIMEZONE
    and are moved into the viewing zone. Date-only values name a calendar
    day, which is the same in every zone.
    """
    if dt.tzinfo is None:
        if not has_time:
            return dt
        dt = dt.replace(tzinfo=get_zone(config.DEFAULT_TIMEZONE))
    return to_wall_clock(dt, tz_name)


def parse_due(value, tz_name: str | None = None) -> tuple[datetime | None, bool]:
    """Parse a due value into (wall-clock datetime, has_time).

    Accepts None/'' (no due date), a ``date``, a ``datetime`` or an ISO 8601
    string. A bare ``YYYY-MM-DD`` is date-only and stored at midnight with
    has_time False. Offsets are converted to ``tz_name`` (the configured
    default when omitted, which is what storage uses) so the stored value
    is the wall-clock time of the same instant there.
    Raises ValueError for anything else.
    """
    if value is None or value == '':
        return None, False
    if isinstance(value, datetime):
        return to_wall_clock(value, tz_name), True
    if isinstance(value, date):
        return datetime.combine(value, time()), False
    if not isinstance(value, str):
        raise ValueError(f"invalid due date: {value!r}")
    s = value.strip()
    if 'T' not in s and ' ' not in s:
        try:
            return datetime.combine(date.fromisoformat(s), time()), False
        except ValueError:
            raise ValueError(f"invalid due date: {value!r}")
    try:
        dt = date_parser.isoparse(s)
    except (ValueError, OverflowError):
        raise ValueError(f"invalid due date: {value!r}")
    return to_wall_clock(dt, tz_name), True


def format_due(dt: datetime | None, has_time: bool) -> str | None:
    """Inverse of parse_due: date-only values render as YYYY-MM-DD."""
    if dt is None:
        return None
    if not has_time:
        return dt.date().isoformat()
    return dt.isoformat()


def isoformat_utc(dt: datetime | None) -> str | None:
    """Render a stored UTC timestamp; SQLite hands these back naive."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat().replace('+00:00', 'Z')


def parse_now(value: str | None) -> datetime:
    """Parse an optional ``now`` override (ISO 8601); default is the wall clock."""
    if not value:
        return now_utc()
    return date_parser.isoparse(value)
