"""
Main API router that assembles all API endpoints.
"""
from fastapi import APIRouter

from civicpulse.api.v1 import health
from civicpulse.api.v1 import router as v1_router

# Mounted under the configured API prefix ("/api")
router = APIRouter()
router.include_router(v1_router)

# Served at the application root
health_router = health.router

# Export the routers
__all__ = ["router", "health_router"]
