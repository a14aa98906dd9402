import math
from collections import namedtuple
from typing import Iterable, Optional, Tuple

EARTH_RADIUS_M = 6371000

GeofenceResult = namedtuple("GeofenceResult", "inside zone_name distance_m")


def _finite(*vals) -> bool:
    try:
        return all(v is not None and math.isfinite(float(v)) for v in vals)
    except (TypeError, ValueError):
        return False


class GeofenceService:
    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """
        Calculate the great circle distance between two points
        on the earth (specified in decimal degrees) using Haversine formula.
        Returns distance in meters.
        """
        if not _finite(lat1, lon1, lat2, lon2):
            return float('inf')

        # Convert to float just in case they are Decimal or strings
        lat1, lon1, lat2, lon2 = map(float, [lat1, lon1, lat2, lon2])

        phi1 = math.radians(lat1)
        phi2 = math.radians(lat2)
        dphi = math.radians(lat2 - lat1)
        dlambda = math.radians(lon2 - lon1)

        a = math.sin(dphi / 2.0)**2 + \
            math.cos(phi1) * math.cos(phi2) * \
            math.sin(dlambda / 2.0)**2

        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return EARTH_RADIUS_M * c

    @staticmethod
    def check_geofence(user_lat: float, user_lon: float, site_lat: float, site_lon: float, radius_m: float) -> Tuple[bool, float]:
        """
        Returns (is_inside, distance_m)
        """
        dist = GeofenceService.calculate_distance(user_lat, user_lon, site_lat, site_lon)
        if radius_m is None or float(radius_m) <= 0:
            return False, dist
        return dist <= float(radius_m), dist

    @staticmethod
    def check_zones(user_lat: Optional[float], user_lon: Optional[float], zones: Iterable) -> GeofenceResult:
        """
        Valid if the point is within ANY zone's radius.

        zones: objects with latitude / longitude / radius_m / name.
        No zones configured => rejected (fail closed).
        Returns the matched zone name, or the nearest zone distance for audit.
        """
        zones = list(zones or [])
        if not zones or not _finite(user_lat, user_lon):
            return GeofenceResult(False, None, None)

        nearest = float('inf')
        for z in zones:
            inside, dist = GeofenceService.check_geofence(
                user_lat, user_lon, z.latitude, z.longitude, z.radius_m
            )
            if inside:
                return GeofenceResult(True, z.name, dist)
            nearest = min(nearest, dist)

        return GeofenceResult(False, None, nearest if math.isfinite(nearest) else None)
