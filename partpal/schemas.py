# partpal/schemas.py
"""Pydantic models for request parsing and response shapes.

Response models serialize to camelCase (the marketplace front-end contract);
Python code uses snake_case field names throughout.
"""
from datetime import datetime
from typing import Any, Dict, Generic, List, Literal, Mapping, Optional, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .exceptions import ValidationError
from .models import BusinessType, PartCondition, PartStatus

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


def format_errors(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return ", ".join(parts)


# --- envelope -------------------------------------------------------------

class ApiResponse(BaseModel, Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None


# --- search filters ----------------------------------------------------------

FILTER_KEYS = (
    "q", "partName", "partNumber", "condition", "minPrice", "maxPrice",
    "year", "make", "model", "province", "city", "sellerType", "radius",
)


def _as_list(value):
    if value is None:
        return None
    items = value if isinstance(value, (list, tuple)) else [value]
    out = []
    for item in items:
        for piece in str(item).split(","):
            piece = piece.strip().upper()
            if piece:
                out.append(piece)
    return out or None


class QueryModel(CamelModel):
    """Base for query-string filters.

    Build these with `from_query` so that blank values are dropped and parse
    failures surface as `ValidationError` rather than pydantic's own error.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    @classmethod
    def from_query(cls, params: Mapping[str, Any]):
        cleaned = {}
        for key, value in params.items():
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    continue
            elif isinstance(value, (list, tuple)):
                value = [v for v in value if str(v).strip()]
                if not value:
                    continue
            elif value is None:
                continue
            cleaned[key] = value
        try:
            return cls.model_validate(cleaned)
        except pydantic.ValidationError as exc:
            raise ValidationError(format_errors(exc))


MIN_VEHICLE_YEAR = 1900


class SearchFilters(QueryModel):
    """One optional field per recognized part filter key."""

    q: Optional[str] = None
    part_name: Optional[str] = None
    part_number: Optional[str] = None
    condition: Optional[List[PartCondition]] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    province: Optional[str] = None
    city: Optional[str] = None
    seller_type: Optional[List[BusinessType]] = None
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    radius: Optional[float] = Field(None, gt=0, le=500)

    @field_validator("condition", "seller_type", mode="before")
    @classmethod
    def _split_upper(cls, v):
        return _as_list(v)

    @field_validator("year")
    @classmethod
    def _model_year(cls, v):
        if v is None:
            return v
        latest = datetime.now().year + 1
        if not MIN_VEHICLE_YEAR <= v <= latest:
            raise ValueError(f"must be between {MIN_VEHICLE_YEAR} and {latest}")
        return v

    @model_validator(mode="after")
    def _radius_triple(self):
        given = [x is not None for x in (self.lat, self.lng, self.radius)]
        if any(given) and not all(given):
            raise ValueError("lat, lng and radius must be supplied together")
        return self

    def active_keys(self) -> List[str]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        # lat/lng only count together with radius
        return [k for k in FILTER_KEYS if k in data]


class SellerFilters(QueryModel):
    q: Optional[str] = None
    location: Optional[str] = None
    business_type: Optional[List[BusinessType]] = None

    @field_validator("business_type", mode="before")
    @classmethod
    def _split_upper(cls, v):
        return _as_list(v)


# --- marketplace projections -----------------------------------------------

class VehicleOut(CamelModel):
    id: str
    vin: Optional[str] = None
    year: int
    make: str
    model: str
    variant: Optional[str] = None
    engine_size: Optional[str] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    color: Optional[str] = None
    mileage: Optional[int] = None
    condition: Optional[str] = None


class SellerOut(CamelModel):
    id: str
    business_name: str
    business_type: BusinessType
    city: Optional[str] = None
    province: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    website: Optional[str] = None
    is_verified: bool
    rating: float
    total_sales: int


class SellerDetail(SellerOut):
    description: Optional[str] = None
    email: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: Optional[datetime] = None


class CategoryOut(CamelModel):
    id: str
    name: str


class PartOut(CamelModel):
    id: str
    vehicle_id: str
    seller_id: str
    category_id: Optional[str] = None
    name: str
    part_number: Optional[str] = None
    description: Optional[str] = None
    condition: PartCondition
    price: float
    currency: str
    status: PartStatus
    location: Optional[str] = None
    images: List[str] = []
    is_listed_on_marketplace: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    vehicle: VehicleOut
    seller: SellerOut
    category: Optional[CategoryOut] = None


class PartDetail(PartOut):
    seller: SellerDetail


class SellerSummary(SellerOut):
    description: Optional[str] = None
    part_count: int = 0


class VehicleSeller(CamelModel):
    id: str
    business_name: str
    city: Optional[str] = None
    province: Optional[str] = None


class VehiclePart(CamelModel):
    id: str
    name: str
    condition: PartCondition
    price: float
    currency: str
    images: List[str] = []


class VehicleDetail(VehicleOut):
    seller: VehicleSeller
    parts: List[VehiclePart] = []


class Page(CamelModel, Generic[T]):
    items: List[T]
    total_count: int
    page: int
    page_size: int
    total_pages: int


# --- facets & results --------------------------------------------------------

class FacetValue(BaseModel):
    value: str
    count: int


class PriceRangeFacet(BaseModel):
    range: str
    count: int


class SearchFacets(CamelModel):
    makes: List[FacetValue] = []
    models: List[FacetValue] = []
    conditions: List[FacetValue] = []
    price_ranges: List[PriceRangeFacet] = []
    locations: List[FacetValue] = []


class SearchResult(CamelModel):
    parts: List[PartOut]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    facets: SearchFacets


# --- analytics -------------------------------------------------------------

class TrackingEvent(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    session_id: Optional[str] = None
    timestamp: Optional[datetime] = None


class PartViewEvent(TrackingEvent):
    part_id: str = Field(..., min_length=1)
    user_agent: Optional[str] = None


class SearchEvent(TrackingEvent):
    query: str
    filters: Any = None
    results_count: int


class SellerContactEvent(TrackingEvent):
    seller_id: str = Field(..., min_length=1)
    part_id: str = Field(..., min_length=1)
    contact_method: Literal["phone", "whatsapp", "email"]


class TrackResult(BaseModel):
    tracked: bool


class AnalyticsSummary(CamelModel):
    total_views: int
    total_searches: int
    total_contacts: int


class TopPartVehicle(CamelModel):
    year: int
    make: str
    model: str


class TopPartProjection(CamelModel):
    id: str
    name: str
    part_number: Optional[str] = None
    price: float
    currency: str
    condition: PartCondition
    status: PartStatus
    vehicle: Optional[TopPartVehicle] = None
    seller_name: Optional[str] = None


class TopPart(CamelModel):
    part_id: str
    view_count: int
    part: Optional[TopPartProjection] = None


class PopularSearch(CamelModel):
    query: str
    search_count: int
    avg_results: int


class Distance(BaseModel):
    distance: float
    unit: str = "km"


def parse_payload(model, payload: Any):
    """Validate a raw JSON body against `model`, raising `ValidationError`."""
    try:
        return model.model_validate(payload or {})
    except pydantic.ValidationError as exc:
        raise ValidationError(format_errors(exc))
