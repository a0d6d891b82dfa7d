"""
Operational Priority Index.

An additive, explainable score used to rank incidents for responders:

    severity points + confirmation points + age points + status modifier

Every component is reported alongside the total so the ranking can be
explained to a responder; there is no learned weighting.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from civicpulse.core.constants import IncidentStatus, PriorityConstants
from civicpulse.db.models import Incident
from civicpulse.services.utils.clock import minutes_between, utc_now


@dataclass(frozen=True)
class PriorityScore:
    """Total score and the per-factor breakdown that produced it."""

    score: int
    factors: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "factors": self.factors}


def severity_points(severity: Any) -> int:
    return PriorityConstants.SEVERITY_POINTS.get(severity, PriorityConstants.DEFAULT_SEVERITY_POINTS)


def confirmation_points(confirmation_count: int) -> int:
    confirms = max(0, int(confirmation_count or 0))
    return min(
        PriorityConstants.MAX_CONFIRMATION_POINTS,
        confirms * PriorityConstants.POINTS_PER_CONFIRMATION,
    )


def age_points(age_minutes: int) -> int:
    return min(PriorityConstants.MAX_AGE_POINTS, age_minutes)


def compute_priority(incident: Incident, now: Optional[datetime] = None) -> PriorityScore:
    """
    Score an incident.

    Args:
        incident: Incident snapshot
        now: Reference instant for aging (defaults to the current time)

    Returns:
        PriorityScore with ``severity``, ``confirmations``, ``time_open`` and
        ``status`` factors
    """
    now = now or utc_now()

    sev_points = severity_points(incident.severity)
    confirms = max(0, incident.confirmation_count)
    conf_points = confirmation_points(confirms)
    open_minutes = minutes_between(incident.timestamp, now)
    aging = age_points(open_minutes)
    status_mod = PriorityConstants.RESOLVED_MODIFIER if incident.status == IncidentStatus.RESOLVED else 0

    return PriorityScore(
        score=sev_points + conf_points + aging + status_mod,
        factors={
            "severity": {"label": incident.severity.value, "points": sev_points},
            "confirmations": {"count": confirms, "points": conf_points},
            "time_open": {"minutes": open_minutes, "points": aging},
            "status": {"label": incident.status.value, "points": status_mod},
        },
    )
