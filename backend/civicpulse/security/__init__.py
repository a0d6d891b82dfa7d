"""
Security Module for CivicPulse

Bearer-token validation and the request principal.

Usage:
    from civicpulse.security import JWTTokenHandler, Principal
"""

from .auth import JWTTokenHandler, Principal, TokenPayload

__all__ = [
    "JWTTokenHandler",
    "Principal",
    "TokenPayload",
]
