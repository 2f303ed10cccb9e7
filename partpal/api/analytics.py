# partpal/api/analytics.py
"""Analytics tracking and rollup endpoints (public, no auth)."""
from typing import Any, List

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.orm import Session

from ..analytics import AnalyticsService
from ..db import get_db
from ..schemas import AnalyticsSummary, ApiResponse, PopularSearch, TopPart, TrackResult

router = APIRouter(prefix="/analytics")


def get_analytics_service(db: Session = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)


def _context(request: Request) -> dict:
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip": request.client.host if request.client else None,
    }


def _tracked(result: TrackResult, what: str) -> ApiResponse[TrackResult]:
    message = f"{what} tracked successfully" if result.tracked else "Analytics tracking failed silently"
    return ApiResponse[TrackResult](success=True, data=result, message=message)


@router.post("/part-view", response_model=ApiResponse[TrackResult])
def track_part_view(request: Request, payload: Any = Body(None),
                    service: AnalyticsService = Depends(get_analytics_service)):
    return _tracked(service.track_part_view(payload, **_context(request)), "Part view")


@router.post("/search", response_model=ApiResponse[TrackResult])
def track_search(request: Request, payload: Any = Body(None),
                 service: AnalyticsService = Depends(get_analytics_service)):
    return _tracked(service.track_search(payload, **_context(request)), "Search")


@router.post("/seller-contact", response_model=ApiResponse[TrackResult])
def track_seller_contact(request: Request, payload: Any = Body(None),
                         service: AnalyticsService = Depends(get_analytics_service)):
    return _tracked(service.track_seller_contact(payload, **_context(request)), "Seller contact")


@router.get("/summary", response_model=ApiResponse[AnalyticsSummary])
def summary(service: AnalyticsService = Depends(get_analytics_service)):
    return ApiResponse[AnalyticsSummary](success=True, data=service.summary(),
                                         message="Analytics summary retrieved successfully")


@router.get("/top-parts", response_model=ApiResponse[List[TopPart]])
def top_parts(limit: str | None = Query(None), period: str | None = Query(None),
              service: AnalyticsService = Depends(get_analytics_service)):
    return ApiResponse[List[TopPart]](success=True, data=service.top_parts(limit, period),
                                      message="Top viewed parts retrieved successfully")


@router.get("/popular-searches", response_model=ApiResponse[List[PopularSearch]])
def popular_searches(limit: str | None = Query(None), period: str | None = Query(None),
                     service: AnalyticsService = Depends(get_analytics_service)):
    return ApiResponse[List[PopularSearch]](success=True, data=service.popular_searches(limit, period),
                                            message="Popular searches retrieved successfully")
