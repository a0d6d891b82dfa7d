"""
Time helpers. All persisted instants are timezone-aware UTC.
"""
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_between(start: Optional[datetime], end: datetime) -> int:
    """Whole minutes elapsed from ``start`` to ``end``, never negative; 0 when ``start`` is unknown."""
    if start is None:
        return 0
    try:
        elapsed = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    except (TypeError, AttributeError):
        return 0
    return max(0, int(elapsed // 60))
