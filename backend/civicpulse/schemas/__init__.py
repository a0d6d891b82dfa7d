"""
Request schemas.
"""

from .incident import (
    IncidentCreate,
    IncidentStatusUpdate,
    IncidentNotesUpdate,
    PollVoteCreate,
)
from .user import ProfileUpdate

__all__ = [
    "IncidentCreate",
    "IncidentStatusUpdate",
    "IncidentNotesUpdate",
    "PollVoteCreate",
    "ProfileUpdate",
]
