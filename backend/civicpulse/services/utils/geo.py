"""
Geographic helpers: great-circle distance and coordinate checks.
"""
import math
from typing import Any, Optional

from geopy.distance import great_circle

from civicpulse.core.constants import GeoConstants

_EARTH_RADIUS_KM = GeoConstants.EARTH_RADIUS_METERS / 1000.0


def distance_meters(lat_a: float, lon_a: float, lat_b: float, lon_b: float) -> float:
    """
    Great-circle distance between two points on a sphere of radius 6,371 km.

    Args:
        lat_a: Latitude of the first point in degrees
        lon_a: Longitude of the first point in degrees
        lat_b: Latitude of the second point in degrees
        lon_b: Longitude of the second point in degrees

    Returns:
        Distance in meters
    """
    return great_circle((lat_a, lon_a), (lat_b, lon_b), radius=_EARTH_RADIUS_KM).meters


def to_coordinate(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def validate_coordinates(latitude: float, longitude: float) -> bool:
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def format_coordinates(latitude: float, longitude: float) -> str:
    """Fallback display name used when reverse geocoding yields nothing."""
    return f"Lat: {latitude:.4f}, Lng: {longitude:.4f}"
