"""
Token handling and request principals.

Identity is delegated to an external provider that issues signed bearer
tokens. The ``sub`` claim identifies the person; ``role``, ``email`` and
``name`` seed their profile the first time they are seen.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from civicpulse.core.config import SecurityConfig
from civicpulse.core.constants import ErrorMessages, UserRole
from civicpulse.core.exceptions import AuthenticationError
from civicpulse.core.logging_config import get_logger
from civicpulse.db.models import User

logger = get_logger(__name__)

TOKEN_ISSUER = "civicpulse"


@dataclass
class TokenPayload:
    """Decoded JWT token payload."""
    sub: str  # Subject (external user id)
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    exp: Optional[datetime] = None
    iat: Optional[datetime] = None
    jti: Optional[str] = None


@dataclass(frozen=True)
class Principal:
    """The authenticated identity attached to a request."""
    user_id: str
    role: UserRole
    external_uid: str
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            user_id=user.id,
            role=user.role,
            external_uid=user.external_uid,
            email=user.email,
            name=user.name,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "external_uid": self.external_uid,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
        }


class JWTTokenHandler:
    """Handler for JWT token creation and validation."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    @classmethod
    def from_config(cls, config: SecurityConfig) -> "JWTTokenHandler":
        return cls(config.secret_key, config.algorithm, config.access_token_expire_minutes)

    def create_access_token(
        self,
        subject: str,
        role: Optional[str] = None,
        email: Optional[str] = None,
        name: Optional[str] = None,
        expires_minutes: Optional[int] = None,
    ) -> str:
        """
        Create a JWT access token.

        Args:
            subject: External user id
            role: Role to provision the profile with
            email: User email
            name: Display name
            expires_minutes: Lifetime override (negative values mint expired tokens)

        Returns:
            JWT token string
        """
        now = datetime.now(timezone.utc)
        minutes = self.expire_minutes if expires_minutes is None else expires_minutes
        payload: Dict[str, Any] = {
            "sub": subject,
            "iat": now,
            "exp": now + timedelta(minutes=minutes),
            "jti": str(uuid.uuid4()),
            "iss": TOKEN_ISSUER,
        }
        if role:
            payload["role"] = role
        if email:
            payload["email"] = email
        if name:
            payload["name"] = name

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> TokenPayload:
        """
        Decode and validate a JWT token.

        Raises:
            AuthenticationError: If the token is invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=TOKEN_ISSUER,
            )
        except ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except JWTError as e:
            logger.warning(f"Rejected bearer token: {e}")
            raise AuthenticationError(ErrorMessages.INVALID_TOKEN)

        subject = payload.get("sub")
        if not subject:
            raise AuthenticationError(ErrorMessages.INVALID_TOKEN)

        return TokenPayload(
            sub=str(subject),
            email=payload.get("email"),
            name=payload.get("name"),
            role=payload.get("role"),
            exp=datetime.fromtimestamp(payload["exp"], timezone.utc) if payload.get("exp") else None,
            iat=datetime.fromtimestamp(payload["iat"], timezone.utc) if payload.get("iat") else None,
            jti=payload.get("jti"),
        )
