# backend/civicpulse/integrations/__init__.py
"""
External service integrations for CivicPulse.

Clients degrade gracefully: a failing lookup returns None instead of raising.
"""

from .maps_client import (
    BaseGeocoder,
    GeocodeResult,
    NominatimGeocoder,
    NullGeocoder,
    build_geocoder,
)

__all__ = [
    'BaseGeocoder',
    'GeocodeResult',
    'NominatimGeocoder',
    'NullGeocoder',
    'build_geocoder',
]
