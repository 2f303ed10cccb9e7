# partpal/geo.py
"""Great-circle distance helpers.

Geocoding itself belongs to an external mapping provider; only the pure math
lives here.
"""
import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Tuple, Union

from .exceptions import ValidationError

EARTH_RADIUS_KM = 6371.0

SA_PROVINCES = [
    "Eastern Cape",
    "Free State",
    "Gauteng",
    "KwaZulu-Natal",
    "Limpopo",
    "Mpumalanga",
    "Northern Cape",
    "North West",
    "Western Cape",
]


@dataclass(frozen=True)
class Point:
    lat: float
    lng: float


PointLike = Union[Point, Mapping[str, Any]]


def _coords(p: PointLike) -> Tuple[float, float]:
    if isinstance(p, Mapping):
        return float(p["lat"]), float(p["lng"])
    return float(p.lat), float(p.lng)


def distance_km(a: PointLike, b: PointLike) -> float:
    """Haversine distance in kilometres.

    Latitude/longitude ranges are not checked; callers validate input.
    """
    lat1, lng1 = _coords(a)
    lat2, lng2 = _coords(b)
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def parse_point(lat, lng) -> Point:
    try:
        point = Point(float(lat), float(lng))
    except (TypeError, ValueError):
        raise ValidationError(f"Coordinates must be numeric (got lat={lat!r}, lng={lng!r})")
    if math.isnan(point.lat) or math.isnan(point.lng):
        raise ValidationError("Coordinates must be numeric")
    return point


def bounding_box(center: Point, radius_km: float) -> Tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lng, max_lng) enclosing the radius circle.

    Used as a SQL pre-filter; callers still apply `distance_km`.
    """
    d_lat = math.degrees(radius_km / EARTH_RADIUS_KM)
    cos_lat = math.cos(math.radians(center.lat))
    if cos_lat < 1e-6:
        d_lng = 180.0
    else:
        d_lng = min(180.0, math.degrees(radius_km / (EARTH_RADIUS_KM * cos_lat)))
    return center.lat - d_lat, center.lat + d_lat, center.lng - d_lng, center.lng + d_lng

CITIES_BY_PROVINCE = {
    "Western Cape": ["Cape Town", "Stellenbosch", "Paarl", "George", "Worcester"],
    "Gauteng": ["Johannesburg", "Pretoria", "Soweto", "Benoni", "Boksburg", "Germiston",
                "Krugersdorp", "Randburg", "Roodepoort", "Sandton"],
    "KwaZulu-Natal": ["Durban", "Pietermaritzburg", "Newcastle", "Richards Bay", "Port Shepstone"],
    "Eastern Cape": ["Port Elizabeth", "East London", "Mthatha", "Grahamstown", "Uitenhage"],
    "Free State": ["Bloemfontein", "Welkom", "Bethlehem", "Kroonstad", "Sasolburg"],
    "Limpopo": ["Polokwane", "Tzaneen", "Thohoyandou", "Mokopane", "Lebowakgomo"],
    "Mpumalanga": ["Nelspruit", "Witbank", "Middelburg", "Secunda", "Ermelo"],
    "Northern Cape": ["Kimberley", "Upington", "Kuruman", "Springbok", "De Aar"],
    "North West": ["Rustenburg", "Mahikeng", "Klerksdorp", "Potchefstroom", "Brits"],
}


def cities_for(province=None) -> List[str]:
    """Major cities of `province`; every city, sorted, for an unknown or missing province."""
    if province and province in CITIES_BY_PROVINCE:
        return list(CITIES_BY_PROVINCE[province])
    return sorted(city for cities in CITIES_BY_PROVINCE.values() for city in cities)
