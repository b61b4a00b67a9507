from datetime import datetime, timezone
from typing import Callable


def _system_now() -> datetime:
    return datetime.now(timezone.utc)


_now: Callable[[], datetime] = _system_now


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime.

    Every "now" comparison in the core goes through here so a single clock
    governs expiry and bettability. Tests swap it with set_clock().
    """
    return _now()


def set_clock(now: Callable[[], datetime]) -> None:
    """Replace the time source used by utcnow()."""
    global _now
    _now = now


def reset_clock() -> None:
    global _now
    _now = _system_now


def ensure_utc(dt: datetime) -> datetime:
    """Make a naive datetime timezone-aware (UTC). Already-aware datetimes pass through.

    MongoDB stores datetimes without tzinfo (naive). When you read a date field
    from a Mongo document and need to compare it with utcnow() (which is
    tz-aware), wrap it with ensure_utc() first.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
