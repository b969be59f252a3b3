"""Clock and timestamp helpers.

Every timestamp the bot stores is wall-clock time in the configured reference
zone, written as ``YYYY-MM-DD HH:MM:SS``.  That keeps SQLite's ``date()``
function and plain string comparison consistent with the user's calendar day.
"""

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

DB_FORMAT = "%Y-%m-%d %H:%M:%S"

Clock = Callable[[], datetime]


def system_clock(tz: ZoneInfo) -> Clock:
    """Return a clock yielding the current aware time in *tz*."""
    return lambda: datetime.now(tz)


def to_db(moment: datetime) -> str:
    """Format *moment* for storage (its tzinfo is assumed to be the reference zone)."""
    return moment.strftime(DB_FORMAT)


def from_db(value: str) -> datetime:
    """Parse a stored timestamp back into a naive ``datetime``."""
    return datetime.strptime(value[:19], DB_FORMAT)


def normalize_datetime(value: object, tz: ZoneInfo) -> str | None:
    """Convert a free-form ISO-ish date-time into the storage format.

    Accepts ``2025-10-06 15:00``, ``2025-10-06T15:00:00``, a trailing ``Z`` or
    an explicit offset.  Offset-aware values are converted into *tz*; naive
    values are taken to already be local to *tz*.  Returns ``None`` when the
    value cannot be interpreted.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    return to_db(parsed)
