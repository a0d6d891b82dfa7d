"""
incident.py - Incident Model

This module defines the Incident record, which represents a citizen-reported
occurrence that the crowd corroborates and responders triage and resolve.

Key Features:
- Normalized classification (free-form type, three-level severity)
- Geographic position with a human-readable display location
- Five-state workflow status with crowd-driven escalation
- Duplicate clustering through ``duplicate_of`` / ``group_id``
- Append-only, time-ordered audit timeline

Records are plain pydantic models; the incident store keeps them in memory and
snapshots them to JSON, so ``to_record`` / ``from_record`` must round-trip every
field exactly.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from civicpulse.core.constants import IncidentStatus, Severity, TimelineActor
from civicpulse.services.utils.clock import ensure_utc
from civicpulse.services.utils.text import normalize_severity, normalize_status


class TimelineEntry(BaseModel):
    """
    A single audit event on an incident's timeline.

    Attributes:
        timestamp: When the event was recorded
        actor: Who caused it (system, crowd, responder)
        action: Short machine-readable code, e.g. ``status_updated``
        detail: Free-text description
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    actor: TimelineActor
    action: str
    detail: str = ""

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Incident(BaseModel):
    """
    Incident record.

    Attributes:
        id: Opaque identifier assigned at creation
        type: Normalized lowercase category
        description: Reporter's description (max 220 chars)
        severity: info, attention or critical
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        display_location: Human-readable place name
        timestamp: Creation instant
        updated_at: Instant of the last mutation
        status: Workflow status
        confirmation_count: Legacy crowd confirmation counter
        internal_notes: Responder-only notes (max 900 chars)
        timeline: Audit entries in ascending time order
        duplicate_of: Id of the incident this report was grouped with
        group_id: Root incident id of the duplicate cluster
    """

    model_config = ConfigDict(validate_assignment=False)

    id: str
    type: str
    description: str = ""
    severity: Severity = Severity.ATTENTION
    latitude: float
    longitude: float
    display_location: str
    timestamp: datetime
    updated_at: datetime
    status: IncidentStatus = IncidentStatus.UNVERIFIED
    confirmation_count: int = Field(0, ge=0)
    internal_notes: str = ""
    timeline: List[TimelineEntry] = Field(default_factory=list)
    duplicate_of: Optional[str] = None
    group_id: str

    @model_validator(mode="before")
    @classmethod
    def _default_group(cls, data: Any) -> Any:
        # Records written before grouping existed are their own group root.
        if isinstance(data, dict) and not data.get("group_id") and data.get("id"):
            data = {**data, "group_id": data["id"]}
        if isinstance(data, dict) and not data.get("updated_at") and data.get("timestamp"):
            data = {**data, "updated_at": data["timestamp"]}
        return data

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, v: Any) -> Severity:
        return normalize_severity(v)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v: Any) -> IncidentStatus:
        return normalize_status(v)

    @field_validator("timestamp", "updated_at")
    @classmethod
    def _utc_instants(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def is_group_root(self) -> bool:
        return self.group_id == self.id

    @property
    def is_resolved(self) -> bool:
        return self.status == IncidentStatus.RESOLVED

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the JSON-compatible persisted form."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Incident":
        return cls.model_validate(data)

    def __repr__(self) -> str:
        return f"<Incident(id={self.id}, type={self.type}, status={self.status.value})>"
