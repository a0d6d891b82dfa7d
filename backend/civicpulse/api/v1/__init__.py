"""
Incident board routes, mounted under the configured API prefix.
"""
from fastapi import APIRouter

from . import incidents, users

router = APIRouter()
router.include_router(users.router, tags=["users"])
router.include_router(incidents.router, tags=["incidents"])
