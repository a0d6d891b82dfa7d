"""
user.py - User Profile Model

Profiles are provisioned from identity-provider tokens. The core only relies
on ``id`` and ``role``; the remaining fields exist for the profile endpoints.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from civicpulse.core.constants import UserRole
from civicpulse.services.utils.clock import ensure_utc


class User(BaseModel):
    """
    User profile.

    Attributes:
        id: Internal user identifier
        external_uid: Subject claim issued by the identity provider
        name: Display name
        email: Lower-cased email address
        role: citizen or admin
        created_at: Provisioning instant
        last_login: Last profile update / login
    """

    id: str
    external_uid: str
    name: str
    email: str
    role: UserRole = UserRole.CITIZEN
    created_at: datetime
    last_login: Optional[datetime] = None

    @field_validator("created_at", "last_login")
    @classmethod
    def _utc_instants(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role.value})>"
