# partpal/api/location.py
"""Location helpers for the marketplace UI: distance, provinces and cities."""
from typing import List

from fastapi import APIRouter, Query

from ..exceptions import ValidationError
from ..geo import SA_PROVINCES, cities_for, distance_km, parse_point
from ..schemas import ApiResponse, Distance

router = APIRouter(prefix="/location")


@router.get("/distance", response_model=ApiResponse[Distance])
def distance(
    lat1: str | None = Query(None),
    lng1: str | None = Query(None),
    lat2: str | None = Query(None),
    lng2: str | None = Query(None),
):
    if not all([lat1, lng1, lat2, lng2]):
        raise ValidationError("lat1, lng1, lat2, and lng2 are required", error="Missing parameters")
    km = distance_km(parse_point(lat1, lng1), parse_point(lat2, lng2))
    return ApiResponse[Distance](success=True, data=Distance(distance=round(km, 1)),
                                 message="Distance calculated successfully")


@router.get("/provinces", response_model=ApiResponse[List[str]])
def provinces():
    return ApiResponse[List[str]](success=True, data=SA_PROVINCES, message="Provinces retrieved successfully")


@router.get("/cities", response_model=ApiResponse[List[str]])
def cities(province: str | None = Query(None)):
    return ApiResponse[List[str]](success=True, data=cities_for(province), message="Cities retrieved successfully")
