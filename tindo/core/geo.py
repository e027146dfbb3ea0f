"""
Great-circle helpers shared by the tracking view and the agent publisher.
"""
import math

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in meters between two points on a spherical earth."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def estimate_eta_minutes(distance_m: float, average_speed_kmh: float = 30.0) -> int:
    """Whole minutes to cover distance_m at a constant average speed (rounded up)."""
    if average_speed_kmh <= 0:
        raise ValueError("average_speed_kmh must be positive")
    return math.ceil((distance_m / 1000.0) / average_speed_kmh * 60)


def is_valid_coordinate(lat: float | None, lng: float | None) -> bool:
    if lat is None or lng is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0
