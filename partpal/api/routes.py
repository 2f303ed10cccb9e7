# partpal/api/routes.py
"""Public marketplace endpoints: part search and detail, vehicles, sellers."""
from typing import List

from fastapi import APIRouter, Depends, Query, Request

from ..db import get_session_factory
from ..schemas import (
    ApiResponse, FacetValue, Page, PartDetail, PartOut, SearchFilters, SearchResult, SellerDetail,
    SellerFilters, SellerSummary, VehicleDetail,
)
from ..search import SearchService

router = APIRouter()


def get_search_service(session_factory=Depends(get_session_factory)) -> SearchService:
    return SearchService(session_factory)


PAGING_KEYS = ("page", "pageSize", "sortBy", "sortOrder")


def query_dict(request: Request, *skip: str) -> dict:
    """Flatten query params; repeated keys become lists."""
    params = request.query_params
    out = {}
    for key in params.keys():
        if key in skip:
            continue
        values = params.getlist(key)
        out[key] = values if len(values) > 1 else values[0]
    return out


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/parts/search", response_model=ApiResponse[SearchResult])
def search_parts(
    request: Request,
    page: str | None = Query(None),
    pageSize: str | None = Query(None),
    sortBy: str | None = Query(None),
    service: SearchService = Depends(get_search_service),
):
    filters = SearchFilters.from_query(query_dict(request, *PAGING_KEYS))
    result = service.search_parts(filters, page=page, page_size=pageSize, sort_by=sortBy)
    return ApiResponse[SearchResult](success=True, data=result, message="Search completed successfully")


@router.get("/parts/featured", response_model=ApiResponse[List[PartOut]])
def featured_parts(limit: str | None = Query(None), service: SearchService = Depends(get_search_service)):
    parts = service.featured_parts(limit)
    return ApiResponse[List[PartOut]](success=True, data=parts, message="Featured parts retrieved successfully")


@router.get("/parts/suggestions", response_model=ApiResponse[List[str]])
def suggestions(
    q: str | None = Query(None),
    type: str | None = Query("parts"),
    make: str | None = Query(None),
    service: SearchService = Depends(get_search_service),
):
    values = service.suggestions(q, type, make)
    too_short = len((q or "").strip()) < 2
    message = "Query too short" if too_short else "Suggestions retrieved successfully"
    return ApiResponse[List[str]](success=True, data=values, message=message)


@router.get("/parts/facets/models", response_model=ApiResponse[List[FacetValue]])
def models_facet(request: Request, make: str | None = Query(None),
                 service: SearchService = Depends(get_search_service)):
    params = query_dict(request, "make", *PAGING_KEYS)
    filters = SearchFilters.from_query(params) if params else None
    models = service.models_facet(make, filters)
    return ApiResponse[List[FacetValue]](success=True, data=models, message="Model facet retrieved successfully")


@router.get("/parts/{part_id}", response_model=ApiResponse[PartDetail])
def get_part(part_id: str, service: SearchService = Depends(get_search_service)):
    part = service.get_part(part_id)
    return ApiResponse[PartDetail](success=True, data=part, message="Part retrieved successfully")


@router.get("/vehicles/makes", response_model=ApiResponse[List[str]])
def vehicle_makes(service: SearchService = Depends(get_search_service)):
    return ApiResponse[List[str]](success=True, data=service.vehicle_makes(),
                                  message="Vehicle makes retrieved successfully")


@router.get("/vehicles/models", response_model=ApiResponse[List[str]])
def vehicle_models(make: str | None = Query(None), service: SearchService = Depends(get_search_service)):
    return ApiResponse[List[str]](success=True, data=service.vehicle_models(make),
                                  message="Vehicle models retrieved successfully")


@router.get("/vehicles/{vehicle_id}", response_model=ApiResponse[VehicleDetail])
def get_vehicle(vehicle_id: str, service: SearchService = Depends(get_search_service)):
    return ApiResponse[VehicleDetail](success=True, data=service.get_vehicle(vehicle_id),
                                      message="Vehicle retrieved successfully")


@router.get("/sellers/search", response_model=ApiResponse[Page[SellerSummary]])
def search_sellers(
    request: Request,
    page: str | None = Query(None),
    pageSize: str | None = Query(None),
    service: SearchService = Depends(get_search_service),
):
    filters = SellerFilters.from_query(query_dict(request, *PAGING_KEYS))
    result = service.search_sellers(filters, page=page, page_size=pageSize)
    return ApiResponse[Page[SellerSummary]](success=True, data=result, message="Sellers retrieved successfully")


@router.get("/sellers/{seller_id}", response_model=ApiResponse[SellerDetail])
def get_seller(seller_id: str, service: SearchService = Depends(get_search_service)):
    return ApiResponse[SellerDetail](success=True, data=service.get_seller(seller_id),
                                     message="Seller retrieved successfully")


@router.get("/sellers/{seller_id}/parts", response_model=ApiResponse[Page[PartOut]])
def seller_parts(
    seller_id: str,
    page: str | None = Query(None),
    pageSize: str | None = Query(None),
    service: SearchService = Depends(get_search_service),
):
    result = service.seller_parts(seller_id, page=page, page_size=pageSize)
    return ApiResponse[Page[PartOut]](success=True, data=result, message="Seller parts retrieved successfully")
