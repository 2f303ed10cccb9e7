# partpal/search.py
"""Marketplace search orchestration.

`SearchService` validates the request, builds the predicate, then runs the
page fetch, the total count and the facet aggregation as three independent
store calls. Each call gets its own session (they run concurrently) and is
bounded by `STORE_TIMEOUT_SECONDS`. No transaction spans the three, so under
concurrent writes the facets and the page may reflect slightly different
snapshots.

Store failures never leak to callers: they are logged here and re-raised as
`StoreUnavailableError`.
"""
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager, joinedload

from . import config
from .exceptions import NotFoundError, StoreUnavailableError, ValidationError
from .facets import FacetAggregator
from .models import Part, PartCondition, Seller, Vehicle
from .predicates import (
    LISTED, PART, SELLER, VEHICLE, VERIFIED, Contains, Equals, Predicate, Range,
    SqlAlchemyCompiler, WithinRadius, base_predicate, build_predicate,
    build_seller_predicate, resolve_radius,
)
from .schemas import (
    FacetValue, Page, PartDetail, PartOut, SearchFilters, SearchResult, SellerDetail,
    SellerFilters, SellerSummary, VehicleDetail, VehicleOut, VehiclePart, VehicleSeller,
)
from .utils import clamp, get_logger, parse_int, total_pages

logger = get_logger(__name__)

SORT_OPTIONS = ("relevance", "price_low", "price_high", "newest", "condition")
SUGGESTION_TYPES = ("parts", "makes", "models")
SUGGESTION_LIMIT = 10
FEATURED_DEFAULT_LIMIT = 8
FEATURED_MAX_LIMIT = 20

UNAVAILABLE = "Search temporarily unavailable"
MAX_OFFSET = 2 ** 63 - 1

_executor = ThreadPoolExecutor(max_workers=16, thread_name_prefix="partpal-search")


def seller_not_found() -> NotFoundError:
    return NotFoundError("Seller", "Seller with this ID does not exist or is not verified")


def order_by_for(sort_by: str) -> list:
    if sort_by == "price_low":
        cols = [Part.price.asc()]
    elif sort_by == "price_high":
        cols = [Part.price.desc()]
    elif sort_by == "newest":
        cols = [Part.created_at.desc()]
    elif sort_by == "condition":
        # declaration order of PartCondition, descending
        ordinal = case({c: i for i, c in enumerate(PartCondition)}, value=Part.condition)
        cols = [ordinal.desc()]
    else:
        cols = [Seller.rating.desc(), Part.created_at.desc()]
    # unique tiebreak keeps pages disjoint
    return cols + [Part.id.asc()]


class SearchService:
    def __init__(self, session_factory: Callable[[], Session],
                 timeout: float = config.STORE_TIMEOUT_SECONDS,
                 facet_scope: str = config.FACET_SCOPE,
                 require_filter: bool = config.SEARCH_REQUIRE_FILTER):
        self.session_factory = session_factory
        self.timeout = timeout
        self.facet_scope = facet_scope
        self.require_filter = require_filter

    # --- store plumbing -----------------------------------------------------

    def _in_session(self, fn: Callable[[Session], Any]) -> Any:
        session = self.session_factory()
        try:
            return fn(session)
        finally:
            session.close()

    def _run(self, *calls: Callable[[Session], Any]) -> List[Any]:
        """Run each call in its own session, concurrently, under one shared deadline."""
        futures = [_executor.submit(self._in_session, fn) for fn in calls]
        _, pending = wait(futures, timeout=self.timeout)
        if pending:
            for f in pending:
                f.cancel()
            logger.error("store call exceeded %.1fs timeout", self.timeout)
            raise StoreUnavailableError(UNAVAILABLE)
        try:
            return [f.result() for f in futures]
        except SQLAlchemyError:
            logger.exception("store failure during search")
            raise StoreUnavailableError(UNAVAILABLE)

    # --- search -------------------------------------------------------------

    @staticmethod
    def paging(page: Any, page_size: Any):
        page = parse_int(page, "page", 1)
        if page < 1:
            raise ValidationError("page: must be 1 or greater")
        page_size = clamp(
            parse_int(page_size, "pageSize", config.SEARCH_DEFAULT_PAGE_SIZE),
            1, config.SEARCH_MAX_PAGE_SIZE,
        )
        # OFFSET is a signed 64-bit integer in every supported store
        if (page - 1) * page_size > MAX_OFFSET:
            raise ValidationError("page: out of range")
        return page, page_size

    def validate(self, filters: SearchFilters, page: Any, page_size: Any, sort_by: Optional[str]):
        page, page_size = self.paging(page, page_size)
        sort_by = sort_by or "relevance"
        if sort_by not in SORT_OPTIONS:
            raise ValidationError(f"sortBy: must be one of {', '.join(SORT_OPTIONS)}")
        if self.require_filter and not filters.active_keys():
            raise ValidationError("At least one search filter is required")
        return page, page_size, sort_by

    def search_parts(self, filters: SearchFilters, page: Any = None,
                     page_size: Any = None, sort_by: Optional[str] = None) -> SearchResult:
        page, page_size, sort_by = self.validate(filters, page, page_size, sort_by)
        predicate = build_predicate(filters)

        if predicate.find(WithinRadius):
            predicate, = self._run(lambda s: resolve_radius(s, predicate))
        facet_predicate = predicate if self.facet_scope == "filtered" else base_predicate()

        offset = (page - 1) * page_size
        parts, total, facets = self._run(
            lambda s: self._fetch_page(s, predicate, sort_by, offset, page_size),
            lambda s: self._count(s, predicate),
            lambda s: FacetAggregator(s).compute(facet_predicate),
        )
        logger.info("search filters=%s sort=%s page=%d total=%d",
                    filters.active_keys(), sort_by, page, total)
        return SearchResult(
            parts=parts,
            total_count=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages(total, page_size),
            facets=facets,
        )

    def _parts_stmt(self, compiler: SqlAlchemyCompiler, predicate: Predicate):
        return compiler.apply(select(Part), predicate).options(
            contains_eager(Part.vehicle),
            contains_eager(Part.seller),
            joinedload(Part.category),
        )

    def _fetch_page(self, session: Session, predicate: Predicate, sort_by: str,
                    offset: int, limit: int) -> List[PartOut]:
        compiler = SqlAlchemyCompiler()
        stmt = self._parts_stmt(compiler, predicate).order_by(*order_by_for(sort_by))
        rows = session.execute(stmt.offset(offset).limit(limit)).scalars().all()
        return [PartOut.model_validate(p) for p in rows]

    def _count(self, session: Session, predicate: Predicate) -> int:
        compiler = SqlAlchemyCompiler()
        stmt = compiler.apply(select(func.count(Part.id)), predicate)
        return session.execute(stmt).scalar_one()

    # --- simplified variants ------------------------------------------------

    def featured_parts(self, limit: Any = None) -> List[PartOut]:
        limit = clamp(parse_int(limit, "limit", FEATURED_DEFAULT_LIMIT), 1, FEATURED_MAX_LIMIT)
        predicate = base_predicate().and_(Range(SELLER, "rating", gte=config.FEATURED_MIN_RATING))

        def fetch(session):
            compiler = SqlAlchemyCompiler()
            stmt = self._parts_stmt(compiler, predicate).order_by(*order_by_for("relevance"))
            rows = session.execute(stmt.limit(limit)).scalars().all()
            return [PartOut.model_validate(p) for p in rows]

        parts, = self._run(fetch)
        return parts

    def get_part(self, part_id: str) -> PartDetail:
        predicate = base_predicate().and_(Equals(PART, "id", part_id))

        def fetch(session):
            compiler = SqlAlchemyCompiler()
            part = session.execute(self._parts_stmt(compiler, predicate)).scalars().first()
            return PartDetail.model_validate(part) if part else None

        part, = self._run(fetch)
        if part is None:
            raise NotFoundError(
                "Part", "Part with this ID does not exist or is not available on marketplace")
        return part

    def suggestions(self, q: Optional[str], kind: Optional[str] = None,
                    make: Optional[str] = None) -> List[str]:
        q = (q or "").strip()
        kind = kind or "parts"
        if len(q) < 2 or kind not in SUGGESTION_TYPES:
            return []
        if kind == "parts":
            column, clauses = Part.name, [Contains(PART, "name", q)]
        elif kind == "makes":
            column, clauses = Vehicle.make, [Contains(VEHICLE, "make", q)]
        else:
            column, clauses = Vehicle.model, [Contains(VEHICLE, "model", q)]
            if make:
                clauses.append(Contains(VEHICLE, "make", make))
        return self._distinct(column, base_predicate().and_(*clauses), SUGGESTION_LIMIT)

    def _distinct(self, column, predicate: Predicate, limit: Optional[int] = None) -> List[str]:
        def fetch(session):
            compiler = SqlAlchemyCompiler()
            stmt = compiler.apply(select(column).distinct(), predicate).order_by(column)
            if limit:
                stmt = stmt.limit(limit)
            return list(session.execute(stmt).scalars().all())

        values, = self._run(fetch)
        return values

    def vehicle_makes(self) -> List[str]:
        return self._distinct(Vehicle.make, base_predicate())

    def vehicle_models(self, make: Optional[str]) -> List[str]:
        if not make or not make.strip():
            raise ValidationError("Please provide a vehicle make", error="Make parameter is required")
        return self._distinct(Vehicle.model, base_predicate().and_(Equals(VEHICLE, "make", make.strip())))

    def models_facet(self, make: Optional[str],
                     filters: Optional[SearchFilters] = None) -> List[FacetValue]:
        """Follow-up call for the models facet once the client selected a make."""
        if not make or not make.strip():
            raise ValidationError("Please provide a vehicle make", error="Make parameter is required")
        if filters is not None and self.facet_scope == "filtered":
            predicate = build_predicate(filters)
        else:
            predicate = base_predicate()

        def compute(session):
            return FacetAggregator(session).models_for_make(resolve_radius(session, predicate), make.strip())

        models, = self._run(compute)
        return models

    # --- vehicles & sellers ---------------------------------------------------

    def get_vehicle(self, vehicle_id: str) -> VehicleDetail:
        """Vehicle with its seller summary and the parts currently visible on it."""
        predicate = base_predicate().and_(Equals(VEHICLE, "id", vehicle_id))

        def fetch(session):
            vehicle = session.execute(
                select(Vehicle).options(joinedload(Vehicle.seller)).where(Vehicle.id == vehicle_id)
            ).scalars().first()
            if vehicle is None:
                return None
            stmt = SqlAlchemyCompiler().apply(select(Part), predicate).order_by(*order_by_for("newest"))
            parts = session.execute(stmt).scalars().all()
            return VehicleDetail(
                **VehicleOut.model_validate(vehicle).model_dump(),
                seller=VehicleSeller.model_validate(vehicle.seller),
                parts=[VehiclePart.model_validate(p) for p in parts],
            )

        vehicle, = self._run(fetch)
        if vehicle is None:
            raise NotFoundError("Vehicle")
        return vehicle

    def _verified_seller(self, session: Session, seller_id: str) -> Optional[Seller]:
        predicate = Predicate(VERIFIED).and_(Equals(SELLER, "id", seller_id))
        stmt = SqlAlchemyCompiler().apply_sellers(select(Seller), predicate)
        return session.execute(stmt).scalars().first()

    def get_seller(self, seller_id: str) -> SellerDetail:
        def fetch(session):
            seller = self._verified_seller(session, seller_id)
            return SellerDetail.model_validate(seller) if seller else None

        seller, = self._run(fetch)
        if seller is None:
            raise seller_not_found()
        return seller

    def seller_parts(self, seller_id: str, page: Any = None, page_size: Any = None) -> Page[PartOut]:
        page, page_size = self.paging(page, page_size)
        found, = self._run(lambda s: self._verified_seller(s, seller_id) is not None)
        if not found:
            raise seller_not_found()

        predicate = base_predicate().and_(Equals(SELLER, "id", seller_id))
        offset = (page - 1) * page_size
        parts, total = self._run(
            lambda s: self._fetch_page(s, predicate, "newest", offset, page_size),
            lambda s: self._count(s, predicate),
        )
        return Page[PartOut](items=parts, total_count=total, page=page, page_size=page_size,
                             total_pages=total_pages(total, page_size))

    def search_sellers(self, filters: SellerFilters, page: Any = None,
                       page_size: Any = None) -> Page[SellerSummary]:
        page, page_size = self.paging(page, page_size)
        predicate = build_seller_predicate(filters)
        compiler = SqlAlchemyCompiler()
        listed = (
            select(func.count(Part.id))
            .where(Part.seller_id == Seller.id, *compiler.compile(Predicate(LISTED)))
            .correlate(Seller)
            .scalar_subquery()
        )
        offset = (page - 1) * page_size

        def fetch(session):
            stmt = (
                compiler.apply_sellers(select(Seller, listed), predicate)
                .order_by(Seller.rating.desc(), Seller.total_sales.desc(), Seller.id.asc())
                .offset(offset)
                .limit(page_size)
            )
            return [
                SellerSummary.model_validate(seller).model_copy(update={"part_count": n})
                for seller, n in session.execute(stmt).all()
            ]

        def count(session):
            stmt = compiler.apply_sellers(select(func.count(Seller.id)), predicate)
            return session.execute(stmt).scalar_one()

        sellers, total = self._run(fetch, count)
        return Page[SellerSummary](items=sellers, total_count=total, page=page, page_size=page_size,
                                   total_pages=total_pages(total, page_size))
