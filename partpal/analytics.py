# partpal/analytics.py
"""Analytics event store and rollups.

Writes are best-effort telemetry with an intentional asymmetry:

* a payload that fails its own shape validation (or a store failure while
  writing) is a *soft* failure: the caller gets `tracked=False` and no error;
* a payload that references a part or seller that does not exist is a *hard*
  failure and raises `NotFoundError`.

Reads (summary, top parts, popular searches) translate store failures into
`StoreUnavailableError`.
"""
import functools
import json
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from . import config
from .exceptions import NotFoundError, StoreUnavailableError, ValidationError
from .models import AnalyticsEvent, EventType, Part, Seller
from .schemas import (
    AnalyticsSummary, PartViewEvent, PopularSearch, SearchEvent, SellerContactEvent,
    TopPart, TopPartProjection, TopPartVehicle, TrackResult, parse_payload,
)
from .utils import clamp, get_logger, parse_int

logger = get_logger(__name__)

PERIOD_RE = re.compile(r"^(\d+)([hdw])$")
PERIOD_UNITS = {"h": "hours", "d": "days", "w": "weeks"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # naive timestamps are taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value: datetime) -> str:
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_period(period: Optional[str]) -> Optional[timedelta]:
    """`"7d"` -> 7 days. None or blank means no window."""
    if period is None or not period.strip():
        return None
    m = PERIOD_RE.match(period.strip().lower())
    if not m or int(m.group(1)) == 0:
        raise ValidationError(f"period: expected <integer><h|d|w>, got {period!r}")
    return timedelta(**{PERIOD_UNITS[m.group(2)]: int(m.group(1))})


def store_read(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError:
            logger.exception("analytics read failed in %s", fn.__name__)
            raise StoreUnavailableError("Analytics temporarily unavailable")
    return wrapper


class AnalyticsService:
    def __init__(self, session: Session, clock=utcnow):
        self.session = session
        self.clock = clock

    # --- writes ---------------------------------------------------------------

    def _parse(self, model, payload, kind: str):
        try:
            return parse_payload(model, payload)
        except ValidationError as exc:
            logger.warning("%s not tracked: %s", kind, exc.message)
            return None

    def _record(self, event_type: EventType, *, timestamp: datetime, metadata: Dict[str, Any],
                part_id: str = None, seller_id: str = None, session_id: str = None,
                user_agent: str = None) -> AnalyticsEvent:
        event = AnalyticsEvent(
            event_type=event_type,
            part_id=part_id,
            seller_id=seller_id,
            event_metadata=metadata,
            session_id=session_id,
            user_agent=user_agent,
            timestamp=timestamp,
        )
        self.session.add(event)
        self.session.commit()
        return event

    def _write_failed(self, kind: str) -> TrackResult:
        self.session.rollback()
        logger.exception("%s tracking failed", kind)
        return TrackResult(tracked=False)

    def track_part_view(self, payload: Any, user_agent: str = None,
                        ip: str = None) -> TrackResult:
        event = self._parse(PartViewEvent, payload, "part view")
        if event is None:
            return TrackResult(tracked=False)
        ts = as_utc(event.timestamp) if event.timestamp else self.clock()
        try:
            seller_id = self.session.execute(
                select(Part.seller_id).where(Part.id == event.part_id)
            ).scalar_one_or_none()
            if seller_id is None:
                raise NotFoundError("Part")
            self._record(
                EventType.PART_VIEW,
                timestamp=ts,
                metadata={"timestamp": iso(ts), "ip": ip},
                part_id=event.part_id,
                seller_id=seller_id,
                session_id=event.session_id,
                user_agent=event.user_agent or user_agent,
            )
        except SQLAlchemyError:
            return self._write_failed("part view")
        return TrackResult(tracked=True)

    def track_search(self, payload: Any, user_agent: str = None,
                     ip: str = None) -> TrackResult:
        event = self._parse(SearchEvent, payload, "search")
        if event is None:
            return TrackResult(tracked=False)
        ts = as_utc(event.timestamp) if event.timestamp else self.clock()
        try:
            self._record(
                EventType.SEARCH,
                timestamp=ts,
                metadata={
                    "query": event.query,
                    "filters": event.filters,
                    "resultsCount": event.results_count,
                    "timestamp": iso(ts),
                    "ip": ip,
                },
                session_id=event.session_id,
                user_agent=user_agent,
            )
        except SQLAlchemyError:
            return self._write_failed("search")
        return TrackResult(tracked=True)

    def track_seller_contact(self, payload: Any, user_agent: str = None,
                             ip: str = None) -> TrackResult:
        event = self._parse(SellerContactEvent, payload, "seller contact")
        if event is None:
            return TrackResult(tracked=False)
        ts = as_utc(event.timestamp) if event.timestamp else self.clock()
        try:
            seller = self.session.execute(
                select(Seller.id).where(Seller.id == event.seller_id)
            ).scalar_one_or_none()
            part = self.session.execute(
                select(Part.id).where(Part.id == event.part_id)
            ).scalar_one_or_none()
            if seller is None:
                raise NotFoundError("Seller")
            if part is None:
                raise NotFoundError("Part")
            self._record(
                EventType.SELLER_CONTACT,
                timestamp=ts,
                metadata={"contactMethod": event.contact_method, "timestamp": iso(ts), "ip": ip},
                part_id=event.part_id,
                seller_id=event.seller_id,
                session_id=event.session_id,
                user_agent=user_agent,
            )
        except SQLAlchemyError:
            return self._write_failed("seller contact")
        return TrackResult(tracked=True)

    # --- rollups --------------------------------------------------------------

    def _limit(self, limit: Any) -> int:
        return clamp(parse_int(limit, "limit", config.ANALYTICS_DEFAULT_LIMIT), 1, config.ANALYTICS_MAX_LIMIT)

    def _since(self, period: Optional[str]) -> Optional[datetime]:
        window = parse_period(period)
        return self.clock() - window if window else None

    @store_read
    def summary(self) -> AnalyticsSummary:
        rows = self.session.execute(
            select(AnalyticsEvent.event_type, func.count(AnalyticsEvent.id))
            .group_by(AnalyticsEvent.event_type)
        ).all()
        counts = {EventType(t): n for t, n in rows}
        return AnalyticsSummary(
            total_views=counts.get(EventType.PART_VIEW, 0),
            total_searches=counts.get(EventType.SEARCH, 0),
            total_contacts=counts.get(EventType.SELLER_CONTACT, 0),
        )

    def top_parts(self, limit: Any = None, period: Optional[str] = None) -> List[TopPart]:
        limit = self._limit(limit)
        since = self._since(period)
        return self._top_parts(limit, since)

    @store_read
    def _top_parts(self, limit: int, since: Optional[datetime]) -> List[TopPart]:
        views = func.count(AnalyticsEvent.id).label("views")
        stmt = (
            select(AnalyticsEvent.part_id, views)
            .where(AnalyticsEvent.event_type == EventType.PART_VIEW,
                   AnalyticsEvent.part_id.is_not(None))
            .group_by(AnalyticsEvent.part_id)
            .order_by(views.desc(), AnalyticsEvent.part_id.asc())
            .limit(limit)
        )
        if since is not None:
            stmt = stmt.where(AnalyticsEvent.timestamp >= since)
        rows = self.session.execute(stmt).all()
        if not rows:
            return []

        ids = [part_id for part_id, _ in rows]
        parts = self.session.execute(
            select(Part)
            .options(joinedload(Part.vehicle), joinedload(Part.seller))
            .where(Part.id.in_(ids))
        ).scalars().all()
        by_id = {p.id: p for p in parts}
        return [
            TopPart(part_id=part_id, view_count=n, part=self._project(by_id.get(part_id)))
            for part_id, n in rows
        ]

    @staticmethod
    def _project(part: Optional[Part]) -> Optional[TopPartProjection]:
        if part is None:
            # the event outlived its part
            return None
        vehicle = None
        if part.vehicle is not None:
            vehicle = TopPartVehicle(year=part.vehicle.year, make=part.vehicle.make, model=part.vehicle.model)
        return TopPartProjection(
            id=part.id,
            name=part.name,
            part_number=part.part_number,
            price=part.price,
            currency=part.currency,
            condition=part.condition,
            status=part.status,
            vehicle=vehicle,
            seller_name=part.seller.business_name if part.seller else None,
        )

    def popular_searches(self, limit: Any = None, period: Optional[str] = None) -> List[PopularSearch]:
        limit = self._limit(limit)
        since = self._since(period)
        return self._popular_searches(limit, since)

    @store_read
    def _popular_searches(self, limit: int, since: Optional[datetime]) -> List[PopularSearch]:
        stmt = select(AnalyticsEvent.event_metadata).where(AnalyticsEvent.event_type == EventType.SEARCH)
        if since is not None:
            stmt = stmt.where(AnalyticsEvent.timestamp >= since)

        counts: Dict[str, int] = defaultdict(int)
        results: Dict[str, List[float]] = defaultdict(list)
        for metadata in self.session.execute(stmt).scalars():
            if isinstance(metadata, str):
                try:
                    metadata = json.loads(metadata)
                except ValueError:
                    continue
            if not isinstance(metadata, dict) or not isinstance(metadata.get("query"), str):
                continue
            query = metadata["query"].strip().lower()
            if not query:
                continue
            counts[query] += 1
            n = metadata.get("resultsCount")
            if isinstance(n, (int, float)) and not isinstance(n, bool):
                results[query].append(n)

        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
        return [
            PopularSearch(
                query=query,
                search_count=n,
                avg_results=round(sum(results[query]) / len(results[query])) if results[query] else 0,
            )
            for query, n in ranked
        ]
