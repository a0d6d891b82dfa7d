"""
Incident timeline recorder.

Timelines are append-only and always sorted by ascending timestamp. Entries are
inserted in order (stable for equal timestamps) rather than re-sorting the whole
list on every append.
"""
from bisect import insort
from datetime import datetime
from typing import Optional

from civicpulse.core.constants import TimelineActor
from civicpulse.db.models import Incident, TimelineEntry
from civicpulse.services.utils.clock import utc_now


def _entry_time(entry: TimelineEntry) -> datetime:
    return entry.timestamp


def append_entry(
    incident: Incident,
    actor: TimelineActor,
    action: str,
    detail: str = "",
    timestamp: Optional[datetime] = None,
) -> TimelineEntry:
    """
    Record an event on ``incident``'s timeline.

    Args:
        incident: Incident to annotate (mutated in place)
        actor: Who caused the event
        action: Short action code
        detail: Free-text detail
        timestamp: Event time (defaults to now)

    Returns:
        The appended entry
    """
    entry = TimelineEntry(
        timestamp=timestamp or utc_now(),
        actor=actor,
        action=action,
        detail=detail or "",
    )
    insort(incident.timeline, entry, key=_entry_time)
    return entry
