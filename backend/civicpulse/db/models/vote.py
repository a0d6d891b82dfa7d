"""
vote.py - Poll Response Model

This module defines the verification poll records citizens submit for an
incident, and the aggregate tally derived from them.

Key Features:
- One response per (incident, user) pair, enforced at submission time
- Three answers: confirm, deny, unsure
- Confidence score (0-100) derived from the confirm ratio
- Responses are immutable once recorded
"""

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from civicpulse.core.constants import PollChoice
from civicpulse.services.utils.clock import ensure_utc


class PollResponse(BaseModel):
    """
    A citizen's answer to an incident verification poll.

    Attributes:
        id: Response identifier
        incident_id: Incident the poll belongs to
        user_id: Responding user
        choice: confirm, deny or unsure
        timestamp: When the response was recorded
    """

    model_config = ConfigDict(frozen=True)

    id: str
    incident_id: str
    user_id: str
    choice: PollChoice
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class PollResults(BaseModel):
    """Aggregate poll tally for one incident."""

    total: int = Field(0, ge=0)
    confirm: int = Field(0, ge=0)
    deny: int = Field(0, ge=0)
    unsure: int = Field(0, ge=0)
    confidence_score: int = Field(0, ge=0, le=100)
