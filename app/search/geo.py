# app/search/geo.py
"""Great-circle distance on a spherical earth.

`haversine_km` and `distance_km_expr` evaluate the same formula term for term,
the first in Python and the second as a SQL expression, so a radius filter run
by the database agrees with the value reported back on results.
"""
import math
from sqlalchemy import func

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    dlat = math.sin(math.radians(lat2 - lat1) / 2)
    dlon = math.sin(math.radians(lon2 - lon1) / 2)
    a = dlat * dlat + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * dlon * dlon
    return EARTH_RADIUS_KM * (2 * math.asin(math.sqrt(min(1.0, a))))


def within_radius(distance_km: float, radius_km: float) -> bool:
    # boundary is inclusive
    return distance_km <= radius_km


def distance_km_expr(lat_col, lon_col, lat: float, lon: float):
    """SQL expression for the distance (km) from (lat, lon) to the row's coordinates."""
    dlat = func.sin(func.radians(lat_col - lat) / 2)
    dlon = func.sin(func.radians(lon_col - lon) / 2)
    a = dlat * dlat + func.cos(func.radians(lat)) * func.cos(func.radians(lat_col)) * dlon * dlon
    return EARTH_RADIUS_KM * (2 * func.asin(func.sqrt(a)))


class GeoProximityEvaluator:
    """Distance and radius checks around a fixed origin."""

    def __init__(self, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude

    def distance_to(self, latitude: float, longitude: float) -> float:
        return haversine_km(self.latitude, self.longitude, latitude, longitude)

    def contains(self, latitude: float, longitude: float, radius_km: float) -> bool:
        return within_radius(self.distance_to(latitude, longitude), radius_km)

    def sql_distance(self, lat_col, lon_col):
        return distance_km_expr(lat_col, lon_col, self.latitude, self.longitude)
