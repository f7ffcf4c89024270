"""Centralized geographic distance calculations.

This module provides Haversine distance calculations and display formatting
for the proximity engine. All distances are in meters unless a function
name says otherwise.
"""

from enum import Enum
from math import atan2, cos, degrees, isfinite, radians, sin, sqrt

EARTH_RADIUS_M = 6_371_000  # Earth radius in meters

METERS_PER_FOOT = 0.3048
METERS_PER_MILE = 1609.344


class UnitSystem(str, Enum):
    METRIC = "metric"
    IMPERIAL = "imperial"


def haversine_distance_m(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points in meters.

    Uses the Haversine formula on a spherical Earth. Accurate to well within
    GPS error at city scale; no ellipsoid correction is applied.

    Args:
        lat1: Latitude of first point in degrees
        lon1: Longitude of first point in degrees
        lat2: Latitude of second point in degrees
        lon2: Longitude of second point in degrees

    Returns:
        Distance between the two points in meters
    """
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_M * c


def initial_bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compass bearing in degrees [0, 360) from the first point towards the second."""
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlon = lon2 - lon1

    y = sin(dlon) * cos(lat2)
    x = cos(lat1) * sin(lat2) - sin(lat1) * cos(lat2) * cos(dlon)

    return (degrees(atan2(y, x)) + 360) % 360


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """Check that a latitude/longitude pair is finite and within range."""
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return False
    if not (isfinite(lat) and isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def format_distance(meters: float, unit_system: UnitSystem | str = UnitSystem.METRIC) -> str:
    """Format a distance for display.

    Metric: whole meters below 1000 m, kilometers with one decimal above.
    Imperial: whole feet below 1000 ft, miles with one decimal above.

    Raises:
        ValueError: If unit_system is not a known unit system.
    """
    unit_system = UnitSystem(unit_system)

    if unit_system is UnitSystem.IMPERIAL:
        feet = meters / METERS_PER_FOOT
        if feet < 1000:
            return f"{round(feet)} ft"
        return f"{meters / METERS_PER_MILE:.1f} mi"

    if meters < 1000:
        return f"{round(meters)} m"
    return f"{meters / 1000:.1f} km"
