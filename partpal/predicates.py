# partpal/predicates.py
"""Marketplace search predicates.

`build_predicate` turns a `SearchFilters` object into a `Predicate`: a flat,
AND-ed tuple of typed clauses that name an entity (part, vehicle, seller) and
a field. The IR knows nothing about SQL; `SqlAlchemyCompiler` lowers it onto
`Part JOIN Vehicle JOIN Seller`.

Every predicate produced here starts from the marketplace visibility clauses
(listed, available, verified seller). Filters can only narrow it. Seller
directory predicates start from the verified-seller clause alone.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import and_, false, or_, select, true
from sqlalchemy.orm import Session

from .geo import Point, bounding_box, distance_km
from .models import Part, PartStatus, Seller, Vehicle
from .schemas import SearchFilters, SellerFilters

PART = "part"
VEHICLE = "vehicle"
SELLER = "seller"


@dataclass(frozen=True)
class Equals:
    entity: str
    field: str
    value: Any


@dataclass(frozen=True)
class Range:
    entity: str
    field: str
    gte: Optional[float] = None
    lte: Optional[float] = None


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match."""
    entity: str
    field: str
    text: str


@dataclass(frozen=True)
class OneOf:
    entity: str
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class AnyOf:
    clauses: Tuple[Any, ...]


@dataclass(frozen=True)
class WithinRadius:
    """Seller located within `radius_km` of `center`."""
    center: Point
    radius_km: float


Clause = Union[Equals, Range, Contains, OneOf, AnyOf, WithinRadius]


@dataclass(frozen=True)
class Predicate:
    clauses: Tuple[Clause, ...] = field(default_factory=tuple)

    def and_(self, *more: Clause) -> "Predicate":
        return Predicate(self.clauses + tuple(more))

    def replace_clause(self, old: Clause, new: Clause) -> "Predicate":
        return replace(self, clauses=tuple(new if c is old else c for c in self.clauses))

    def find(self, kind) -> List[Clause]:
        return [c for c in self.clauses if isinstance(c, kind)]

    def __len__(self):
        return len(self.clauses)


LISTED = (
    Equals(PART, "is_listed_on_marketplace", True),
    Equals(PART, "status", PartStatus.AVAILABLE),
)
VERIFIED = (Equals(SELLER, "is_verified", True),)
VISIBILITY = LISTED + VERIFIED


def base_predicate() -> Predicate:
    return Predicate(VISIBILITY)


def build_predicate(filters: SearchFilters) -> Predicate:
    clauses: List[Clause] = []

    if filters.q:
        clauses.append(AnyOf((
            Contains(PART, "name", filters.q),
            Contains(PART, "description", filters.q),
            Contains(PART, "part_number", filters.q),
        )))
    if filters.part_name:
        clauses.append(Contains(PART, "name", filters.part_name))
    if filters.part_number:
        clauses.append(Equals(PART, "part_number", filters.part_number))
    if filters.condition:
        clauses.append(OneOf(PART, "condition", tuple(filters.condition)))
    if filters.min_price is not None or filters.max_price is not None:
        clauses.append(Range(PART, "price", gte=filters.min_price, lte=filters.max_price))

    if filters.year is not None:
        clauses.append(Equals(VEHICLE, "year", filters.year))
    if filters.make:
        clauses.append(Contains(VEHICLE, "make", filters.make))
    if filters.model:
        clauses.append(Contains(VEHICLE, "model", filters.model))

    if filters.province:
        clauses.append(Contains(SELLER, "province", filters.province))
    if filters.city:
        clauses.append(Contains(SELLER, "city", filters.city))
    if filters.seller_type:
        clauses.append(OneOf(SELLER, "business_type", tuple(filters.seller_type)))
    if filters.radius is not None:
        clauses.append(WithinRadius(Point(filters.lat, filters.lng), filters.radius))

    return base_predicate().and_(*clauses)


def build_seller_predicate(filters: SellerFilters) -> Predicate:
    """Seller-only predicate for the public seller directory."""
    clauses: List[Clause] = list(VERIFIED)
    if filters.q:
        clauses.append(AnyOf((
            Contains(SELLER, "business_name", filters.q),
            Contains(SELLER, "description", filters.q),
        )))
    if filters.location:
        clauses.append(AnyOf((
            Contains(SELLER, "city", filters.location),
            Contains(SELLER, "province", filters.location),
        )))
    if filters.business_type:
        clauses.append(OneOf(SELLER, "business_type", tuple(filters.business_type)))
    return Predicate(tuple(clauses))


# --- lowering ------------------------------------------------------------------

ENTITIES: Dict[str, Any] = {PART: Part, VEHICLE: Vehicle, SELLER: Seller}


def column_for(entity: str, name: str):
    try:
        model = ENTITIES[entity]
    except KeyError:
        raise ValueError(f"unknown entity {entity!r}")
    col = getattr(model, name, None)
    if col is None:
        raise ValueError(f"unknown field {entity}.{name}")
    return col


def sellers_within(session: Session, center: Point, radius_km: float) -> List[str]:
    """Ids of verified sellers within `radius_km` of `center`.

    The bounding box narrows candidates in SQL; the exact cut uses Haversine.
    """
    min_lat, max_lat, min_lng, max_lng = bounding_box(center, radius_km)
    rows = session.execute(
        select(Seller.id, Seller.latitude, Seller.longitude).where(
            Seller.is_verified.is_(True),
            Seller.latitude.is_not(None),
            Seller.longitude.is_not(None),
            Seller.latitude.between(min_lat, max_lat),
            Seller.longitude.between(min_lng, max_lng),
        )
    ).all()
    return [
        sid for sid, lat, lng in rows
        if distance_km(center, Point(lat, lng)) <= radius_km
    ]


def resolve_radius(session: Session, predicate: Predicate) -> Predicate:
    """Replace radius clauses with the matching seller-id set."""
    for clause in predicate.find(WithinRadius):
        ids = sellers_within(session, clause.center, clause.radius_km)
        predicate = predicate.replace_clause(clause, OneOf(SELLER, "id", tuple(ids)))
    return predicate


class SqlAlchemyCompiler:
    """Lowers a `Predicate` into SQLAlchemy boolean expressions.

    Radius clauses must be resolved to seller ids (`resolve_radius`) first.
    """

    def compile(self, predicate: Predicate) -> list:
        return [self._clause(c) for c in predicate.clauses]

    def _clause(self, clause: Clause):
        if isinstance(clause, Equals):
            col = column_for(clause.entity, clause.field)
            if clause.value is None:
                return col.is_(None)
            if isinstance(clause.value, bool):
                return col.is_(clause.value)
            return col == clause.value
        if isinstance(clause, Range):
            col = column_for(clause.entity, clause.field)
            conds = []
            if clause.gte is not None:
                conds.append(col >= clause.gte)
            if clause.lte is not None:
                conds.append(col <= clause.lte)
            return and_(*conds) if conds else true()
        if isinstance(clause, Contains):
            return column_for(clause.entity, clause.field).icontains(clause.text, autoescape=True)
        if isinstance(clause, OneOf):
            if not clause.values:
                return false()
            return column_for(clause.entity, clause.field).in_(clause.values)
        if isinstance(clause, AnyOf):
            return or_(*[self._clause(c) for c in clause.clauses])
        if isinstance(clause, WithinRadius):
            raise TypeError("radius clause must be resolved before compiling")
        raise TypeError(f"unsupported clause {clause!r}")

    def apply(self, stmt, predicate: Predicate):
        """Join Part to Vehicle and Seller and filter `stmt` by `predicate`."""
        return (
            stmt.select_from(Part)
            .join(Vehicle, Part.vehicle_id == Vehicle.id)
            .join(Seller, Part.seller_id == Seller.id)
            .where(*self.compile(predicate))
        )

    def apply_sellers(self, stmt, predicate: Predicate):
        """Filter a seller-only `stmt`; every clause must target the seller."""
        return stmt.select_from(Seller).where(*self.compile(predicate))
