"""
Application constants and enumerations.
"""

from enum import Enum
from datetime import timedelta


class Severity(str, Enum):
    """Reporter-assessed severity of an incident."""
    INFO = "info"
    ATTENTION = "attention"
    CRITICAL = "critical"


class IncidentStatus(str, Enum):
    """Incident workflow states."""
    UNVERIFIED = "unverified"
    CROWD_CONFIRMED = "crowd_confirmed"
    VERIFIED = "verified"
    RESPONDING = "responding"
    RESOLVED = "resolved"


class TimelineActor(str, Enum):
    """Who caused a timeline entry."""
    SYSTEM = "system"
    CROWD = "crowd"
    RESPONDER = "responder"


class PollChoice(str, Enum):
    """Answers a citizen can give to an incident poll."""
    CONFIRM = "confirm"
    DENY = "deny"
    UNSURE = "unsure"


class UserRole(str, Enum):
    """Roles supplied by the identity provider."""
    CITIZEN = "citizen"
    ADMIN = "admin"


class TimelineAction:
    """Short codes written to incident timelines."""
    INCIDENT_REPORTED = "incident_reported"
    DUPLICATE_GROUPED = "potential_duplicate_grouped"
    CONFIRMATION_RECEIVED = "confirmation_received"
    STATUS_AUTO_ESCALATED = "status_auto_escalated"
    STATUS_UPDATED = "status_updated"
    NOTES_UPDATED = "internal_notes_updated"


class IncidentConstants:
    """Input limits and defaults for incident records."""

    DEFAULT_TYPE = "general"
    DEFAULT_SEVERITY = Severity.ATTENTION
    DEFAULT_STATUS = IncidentStatus.UNVERIFIED

    MAX_TYPE_LENGTH = 40
    MAX_DESCRIPTION_LENGTH = 220
    MAX_NOTES_LENGTH = 900
    MAX_SEVERITY_LENGTH = 16
    MAX_STATUS_LENGTH = 30

    # Confirmations needed to move an unverified incident to crowd_confirmed
    AUTO_ESCALATION_THRESHOLD = 3


class PriorityConstants:
    """Weights of the Operational Priority Index."""

    SEVERITY_POINTS = {
        Severity.INFO: 10,
        Severity.ATTENTION: 30,
        Severity.CRITICAL: 60,
    }
    DEFAULT_SEVERITY_POINTS = 30

    POINTS_PER_CONFIRMATION = 8
    MAX_CONFIRMATION_POINTS = 40

    # +1 per minute open
    MAX_AGE_POINTS = 45

    RESOLVED_MODIFIER = -200


class DuplicateConstants:
    """Spatio-temporal window for grouping likely duplicate reports."""

    MAX_DISTANCE_METERS = 200.0
    MAX_TIME_DELTA = timedelta(minutes=10)


class GeoConstants:
    """Geodesy constants."""

    EARTH_RADIUS_METERS = 6_371_000.0


class UserConstants:
    """Profile validation limits."""

    MIN_NAME_LENGTH = 2
    MAX_NAME_LENGTH = 100
    MAX_EMAIL_LENGTH = 200


class ErrorMessages:
    """Caller-facing error messages."""

    LOCATION_REQUIRED = "Location required: enter a location name, use GPS button, or provide coordinates"
    LOCATION_UNRESOLVABLE = (
        'Unable to locate "{name}". Please try: GPS button, a different location name, '
        "or enter coordinates manually."
    )
    AUTH_REQUIRED = "Authentication required"
    INVALID_TOKEN = "Invalid or expired token"
    ADMIN_REQUIRED = "Admin access required"
    INVALID_STATUS = "Invalid status. Must be one of: {allowed}"
