"""
API package: HTTP routers and their dependencies.
"""
from .router import health_router, router

__all__ = ["router", "health_router"]
