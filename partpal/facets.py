# partpal/facets.py
"""Facet counts for the marketplace filter UI.

Every facet is a grouped count over the same `Part JOIN Vehicle JOIN Seller`
selection the search uses, so a facet can never count a part the predicate
would hide. The models facet is left empty here: the client asks
for it with `models_for_make` once a make has been picked.
"""
from typing import List, Optional, Tuple

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import Session

from .models import Part, PartCondition, Seller, Vehicle
from .predicates import VEHICLE, Equals, Predicate, SqlAlchemyCompiler
from .schemas import FacetValue, PriceRangeFacet, SearchFacets
from .utils import get_logger

logger = get_logger(__name__)

# (label, lower inclusive, upper exclusive); None means open-ended
PRICE_BUCKETS: List[Tuple[str, float, Optional[float]]] = [
    ("0-1000", 0, 1000),
    ("1000-5000", 1000, 5000),
    ("5000-10000", 5000, 10000),
    ("10000-25000", 10000, 25000),
    ("25000+", 25000, None),
]

CONDITION_ORDER = {c: i for i, c in enumerate(PartCondition)}


def price_bucket_expr(column=Part.price):
    whens = []
    for label, low, high in PRICE_BUCKETS:
        cond = column >= low if high is None else and_(column >= low, column < high)
        whens.append((cond, label))
    return case(*whens, else_=None)


class FacetAggregator:
    def __init__(self, session: Session):
        self.session = session
        self.compiler = SqlAlchemyCompiler()

    def compute(self, predicate: Predicate) -> SearchFacets:
        return SearchFacets(
            makes=self.makes(predicate),
            models=[],
            conditions=self.conditions(predicate),
            price_ranges=self.price_ranges(predicate),
            locations=self.locations(predicate),
        )

    def _grouped(self, key, predicate: Predicate, *extra):
        count = func.count(Part.id).label("count")
        stmt = self.compiler.apply(select(key, count), predicate)
        if extra:
            stmt = stmt.where(*extra)
        return self.session.execute(stmt.group_by(key)).all()

    def makes(self, predicate: Predicate) -> List[FacetValue]:
        rows = self._grouped(Vehicle.make, predicate)
        rows = sorted(rows, key=lambda r: (-r[1], r[0]))
        return [FacetValue(value=make, count=n) for make, n in rows if n > 0]

    def conditions(self, predicate: Predicate) -> List[FacetValue]:
        rows = self._grouped(Part.condition, predicate)
        rows = sorted(rows, key=lambda r: CONDITION_ORDER[PartCondition(r[0])])
        return [FacetValue(value=PartCondition(cond).value, count=n) for cond, n in rows if n > 0]

    def price_ranges(self, predicate: Predicate) -> List[PriceRangeFacet]:
        bucket = price_bucket_expr().label("bucket")
        count = func.count(Part.id).label("count")
        stmt = self.compiler.apply(select(bucket, count), predicate).group_by(bucket)
        counts = {label: n for label, n in self.session.execute(stmt).all() if label is not None}
        # keep bucket order, drop empties
        return [
            PriceRangeFacet(range=label, count=counts[label])
            for label, _, _ in PRICE_BUCKETS
            if counts.get(label, 0) > 0
        ]

    def locations(self, predicate: Predicate) -> List[FacetValue]:
        rows = self._grouped(Seller.province, predicate, Seller.province.is_not(None))
        rows = sorted(rows, key=lambda r: (-r[1], r[0]))
        return [FacetValue(value=province, count=n) for province, n in rows if n > 0]

    def models_for_make(self, predicate: Predicate, make: str) -> List[FacetValue]:
        """Second-phase facet: model counts for one selected make."""
        rows = self._grouped(Vehicle.model, predicate.and_(Equals(VEHICLE, "make", make)))
        rows = sorted(rows, key=lambda r: (-r[1], r[0]))
        logger.debug("models facet for make=%s: %d values", make, len(rows))
        return [FacetValue(value=model, count=n) for model, n in rows if n > 0]
