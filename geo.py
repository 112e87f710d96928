"""Great-circle distance helpers for geofence checks."""

import math

EARTH_RADIUS_METERS = 6371000.0
DEFAULT_RADIUS_METERS = 500


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in meters between two latitude/longitude points (haversine formula)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def within_radius(
    user_lat: float,
    user_lng: float,
    target_lat: float,
    target_lng: float,
    radius_meters: float,
) -> bool:
    """True if the user is inside the geofence. The boundary counts as inside."""
    return haversine_meters(user_lat, user_lng, target_lat, target_lng) <= radius_meters
