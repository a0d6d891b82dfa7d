"""
User profile endpoints.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from civicpulse.api.deps import get_current_principal, get_user_store
from civicpulse.core.exceptions import raise_not_found
from civicpulse.schemas import ProfileUpdate
from civicpulse.security.auth import Principal
from civicpulse.services.community.user_service import UserStore

router = APIRouter(prefix="/user")


@router.get("/profile")
async def get_profile(
    principal: Principal = Depends(get_current_principal),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    user = users.get_by_id(principal.user_id)
    if user is None:
        raise_not_found("User", principal.user_id)
    return {"user": user.to_record()}


@router.post("/profile")
async def update_profile(
    payload: ProfileUpdate,
    principal: Principal = Depends(get_current_principal),
    users: UserStore = Depends(get_user_store),
) -> Dict[str, Any]:
    """
    Update the caller's display name and email. The role cannot be changed here.
    """
    user = users.create_or_update_user(
        external_uid=principal.external_uid,
        email=payload.email or principal.email,
        name=payload.name or principal.name,
    )
    return {"user": user.to_record()}
