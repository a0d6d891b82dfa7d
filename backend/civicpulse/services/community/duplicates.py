"""
Duplicate-candidate detection.

A new report is grouped with an existing, unresolved incident of the same type
reported within 10 minutes and 200 meters of it. Groups are flat: a duplicate of
a duplicate joins the original root's group.
"""
import logging
from typing import Iterable, Optional

from civicpulse.core.constants import DuplicateConstants
from civicpulse.db.models import Incident
from civicpulse.services.utils.geo import distance_meters

logger = logging.getLogger(__name__)


def is_duplicate_of(candidate: Incident, existing: Incident) -> bool:
    if existing.is_resolved:
        return False
    if existing.type != candidate.type:
        return False
    if abs(existing.timestamp - candidate.timestamp) > DuplicateConstants.MAX_TIME_DELTA:
        return False
    distance = distance_meters(
        candidate.latitude, candidate.longitude,
        existing.latitude, existing.longitude,
    )
    return distance <= DuplicateConstants.MAX_DISTANCE_METERS


def find_duplicate(candidate: Incident, existing_incidents: Iterable[Incident]) -> Optional[Incident]:
    """
    Return the first existing incident, in iteration order, that ``candidate`` duplicates.

    Args:
        candidate: The incident being created
        existing_incidents: Incidents already in the store

    Returns:
        The matching incident or None
    """
    for existing in existing_incidents:
        if existing.id == candidate.id:
            continue
        if is_duplicate_of(candidate, existing):
            logger.debug(f"Incident {candidate.id} matches existing incident {existing.id}")
            return existing
    return None


def link_duplicate(candidate: Incident, match: Optional[Incident]) -> None:
    """Set ``duplicate_of`` / ``group_id`` on a freshly built incident."""
    if match is None:
        candidate.duplicate_of = None
        candidate.group_id = candidate.id
        return
    candidate.duplicate_of = match.id
    candidate.group_id = match.group_id or match.id
