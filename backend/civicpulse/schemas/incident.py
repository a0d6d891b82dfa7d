"""
Request schemas for incident and poll endpoints.

Bodies are validated for shape here. Enum-like and free-text values (type,
severity, status, choice, notes) are accepted as any JSON value; the services
clamp or coerce them, so a wrong type falls back to the default instead of
failing the request.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class IncidentCreate(BaseModel):
    """Payload for reporting a new incident."""

    model_config = ConfigDict(extra="forbid")

    type: Any = Field(None, description="Free-form category, e.g. 'fire'")
    description: Any = Field(None, description="What is happening")
    severity: Any = Field(None, description="info, attention or critical")
    latitude: Optional[float] = Field(None, ge=-90, le=90, allow_inf_nan=False)
    longitude: Optional[float] = Field(None, ge=-180, le=180, allow_inf_nan=False)
    location_name: Optional[str] = Field(
        None,
        max_length=300,
        description="Place name to forward-geocode when coordinates are missing",
    )

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class IncidentStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Any = None


class IncidentNotesUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    internal_notes: Any = None


class PollVoteCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    choice: Any = Field(None, description="confirm, deny or unsure")
