"""
Great-circle distance helpers for proximity matching.
"""
import math

# Mean earth radius in metres
EARTH_RADIUS_M = 6371008.8


def haversine_m(lon1, lat1, lon2, lat2):
    """Distance in metres between two (longitude, latitude) points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lon, lat, radius_m):
    """
    Return (min_lon, min_lat, max_lon, max_lat) enclosing a circle of radius_m.
    Longitude bounds are None when the box wraps the antimeridian or a pole;
    callers then filter on latitude only.
    """
    angular = radius_m / EARTH_RADIUS_M
    d_lat = math.degrees(angular)
    min_lat = lat - d_lat
    max_lat = lat + d_lat
    if min_lat <= -90 or max_lat >= 90 or angular >= math.pi / 2:
        return None, max(min_lat, -90.0), None, min(max_lat, 90.0)

    # Widest longitude reached by the circle, not the longitude offset at lat
    d_lon = math.degrees(math.asin(math.sin(angular) / math.cos(math.radians(lat))))
    min_lon = lon - d_lon
    max_lon = lon + d_lon
    if min_lon < -180 or max_lon > 180:
        return None, min_lat, None, max_lat
    return min_lon, min_lat, max_lon, max_lat
