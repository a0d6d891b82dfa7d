"""
Common FastAPI dependencies used across the API.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from civicpulse.core.config import Config
from civicpulse.core.constants import ErrorMessages, UserConstants, UserRole
from civicpulse.core.exceptions import AuthenticationError, AuthorizationError
from civicpulse.core.logging_config import get_logger
from civicpulse.security.auth import JWTTokenHandler, Principal, TokenPayload
from civicpulse.services.community.incident_service import IncidentService
from civicpulse.services.community.poll_service import PollLedger
from civicpulse.services.community.user_service import UserStore

logger = get_logger(__name__)

# HTTP Bearer scheme for identity-provider tokens
http_bearer = HTTPBearer(auto_error=False)


def get_app_config(request: Request) -> Config:
    return request.app.state.config


def get_incident_service(request: Request) -> IncidentService:
    return request.app.state.incidents


def get_poll_ledger(request: Request) -> PollLedger:
    return request.app.state.polls


def get_user_store(request: Request) -> UserStore:
    return request.app.state.users


def get_token_handler(request: Request) -> JWTTokenHandler:
    return request.app.state.token_handler


def _provision_principal(payload: TokenPayload, users: UserStore) -> Principal:
    user = users.get_by_external_uid(payload.sub)
    if user is None:
        if not payload.email:
            raise AuthenticationError("Token is missing the email claim")
        name = (payload.name or payload.email.split("@")[0]).strip()
        if len(name) < UserConstants.MIN_NAME_LENGTH:
            name = "User"
        user = users.create_or_update_user(
            external_uid=payload.sub,
            email=payload.email,
            name=name,
            role=payload.role or UserRole.CITIZEN.value,
        )
    return Principal.from_user(user)


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    tokens: JWTTokenHandler = Depends(get_token_handler),
    users: UserStore = Depends(get_user_store),
) -> Principal:
    """
    Resolve the bearer token to a principal, provisioning a profile the
    first time a subject is seen.

    Raises:
        AuthenticationError: If the token is missing or invalid
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(ErrorMessages.AUTH_REQUIRED)

    payload = tokens.decode_token(credentials.credentials)
    return _provision_principal(payload, users)


async def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    tokens: JWTTokenHandler = Depends(get_token_handler),
    users: UserStore = Depends(get_user_store),
) -> Optional[Principal]:
    """
    Get the current principal if authenticated, otherwise return None.
    Doesn't raise for missing or invalid tokens.
    """
    if credentials is None or not credentials.credentials:
        return None

    try:
        payload = tokens.decode_token(credentials.credentials)
        return _provision_principal(payload, users)
    except AuthenticationError as e:
        logger.debug(f"Optional auth: {e.message}")
        return None


async def require_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """
    Raises:
        AuthorizationError: If the principal is not an admin
    """
    if not principal.is_admin:
        logger.warning(f"User {principal.user_id} denied admin access", extra={"user_id": principal.user_id})
        raise AuthorizationError(ErrorMessages.ADMIN_REQUIRED, required_role=UserRole.ADMIN.value)
    return principal
