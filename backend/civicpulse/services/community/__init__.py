"""
Community incident services: ranking, duplicate grouping, timelines, the
incident lifecycle, verification polls and user profiles.
"""

from .incident_service import IncidentService
from .poll_service import PollLedger
from .user_service import UserStore

__all__ = [
    "IncidentService",
    "PollLedger",
    "UserStore",
]
