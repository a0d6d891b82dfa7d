"""
Persisted record models.
"""

from .incident import Incident, TimelineEntry
from .vote import PollResponse, PollResults
from .user import User

__all__ = [
    "Incident",
    "TimelineEntry",
    "PollResponse",
    "PollResults",
    "User",
]
