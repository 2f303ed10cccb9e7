# tests/test_search.py
import time
from unittest.mock import MagicMock, Mock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from partpal.exceptions import NotFoundError, StoreUnavailableError, ValidationError
from partpal.models import Part, PartStatus, Seller
from partpal.schemas import SearchFilters, SellerFilters
from partpal.search import SORT_OPTIONS, SearchService


def _search(service, page=None, page_size=None, sort_by=None, **params):
    return service.search_parts(SearchFilters.from_query(params), page=page,
                                page_size=page_size, sort_by=sort_by)


def test_toyota_price_window(search_service, marketplace):
    result = _search(search_service, make="Toyota", minPrice="400", maxPrice="500")

    assert [p.name for p in result.parts] == ["Brake Pads"]
    assert result.total_count == 1
    assert result.total_pages == 1
    assert result.parts[0].seller.business_name == "AutoParts Johannesburg"
    assert result.parts[0].vehicle.model == "Camry"
    assert [(f.value, f.count) for f in result.facets.conditions] == [("GOOD", 1)]
    assert [(r.range, r.count) for r in result.facets.price_ranges] == [("0-1000", 1)]


def test_only_visible_parts_are_returned(search_service, db, catalog):
    result = _search(search_service, minPrice="0", page_size="100")
    hidden = {p.id for p in catalog["hidden"]}

    assert result.total_count == 7
    for part in result.parts:
        assert part.id not in hidden
        assert part.is_listed_on_marketplace
        assert part.status == PartStatus.AVAILABLE
        assert part.seller.is_verified
    visible = db.execute(
        select(Part.id).join(Seller, Part.seller_id == Seller.id).where(
            Part.is_listed_on_marketplace.is_(True),
            Part.status == PartStatus.AVAILABLE,
            Seller.is_verified.is_(True),
        )
    ).scalars().all()
    assert {p.id for p in result.parts} == set(visible)


@pytest.mark.parametrize("sort_by", SORT_OPTIONS)
def test_pages_are_disjoint_and_complete(search_service, catalog, sort_by):
    first = _search(search_service, minPrice="0", page_size="3", sort_by=sort_by)
    assert first.total_pages == 3

    seen = []
    for page in range(1, first.total_pages + 1):
        result = _search(search_service, minPrice="0", page=str(page), page_size="3", sort_by=sort_by)
        assert result.total_count == first.total_count
        seen.extend(p.id for p in result.parts)
    assert len(seen) == len(set(seen)) == first.total_count


def test_price_sorts(search_service, catalog):
    low = _search(search_service, minPrice="0", sort_by="price_low")
    high = _search(search_service, minPrice="0", sort_by="price_high")
    prices = [p.price for p in low.parts]
    assert prices == sorted(prices)
    assert [p.price for p in high.parts] == sorted(prices, reverse=True)


def test_condition_sort_worst_first(search_service, catalog):
    result = _search(search_service, minPrice="0", sort_by="condition")
    assert [p.condition.value for p in result.parts] == [
        "POOR", "FAIR", "GOOD", "GOOD", "EXCELLENT", "EXCELLENT", "NEW",
    ]


def test_newest_and_relevance(search_service, catalog):
    newest = _search(search_service, minPrice="0", sort_by="newest")
    assert newest.parts[0].name == "Radiator"

    relevance = _search(search_service, minPrice="0")
    ratings = [p.seller.rating for p in relevance.parts]
    assert ratings == sorted(ratings, reverse=True)


def test_facet_totals_bounded_by_count(search_service, catalog):
    result = _search(search_service, q="e")
    assert sum(r.count for r in result.facets.price_ranges) <= result.total_count
    assert sum(f.count for f in result.facets.conditions) <= result.total_count


def test_free_text_and_seller_type(search_service, catalog):
    by_number = _search(search_service, q="bmw-hdl")
    assert [p.name for p in by_number.parts] == ["Headlight Assembly"]

    private = _search(search_service, sellerType="private")
    assert {p.name for p in private.parts} == {"Alloy Wheel", "Radiator"}


def test_radius_filter(search_service, catalog):
    near = _search(search_service, lat="-26.2041", lng="28.0473", radius="50")
    assert {p.name for p in near.parts} == {"Engine Block", "Brake Pads"}

    nowhere = _search(search_service, lat="0", lng="0", radius="10")
    assert nowhere.total_count == 0
    assert nowhere.parts == []
    assert nowhere.facets.makes == []


def test_page_size_is_clamped(search_service, catalog):
    assert _search(search_service, minPrice="0", page_size="1000").page_size == 100
    assert _search(search_service, minPrice="0", page_size="0").page_size == 1


@pytest.mark.parametrize("kwargs", [
    {"page": "0"},
    {"page": "two"},
    {"sort_by": "popularity"},
])
def test_bad_paging_rejected_before_store(kwargs):
    factory = Mock()
    service = SearchService(factory)
    with pytest.raises(ValidationError):
        _search(service, make="Toyota", **kwargs)
    factory.assert_not_called()


def test_filter_required(search_service):
    with pytest.raises(ValidationError) as exc:
        search_service.search_parts(SearchFilters())
    assert exc.value.message == "At least one search filter is required"


def test_filter_requirement_can_be_disabled(session_factory, catalog):
    service = SearchService(session_factory, require_filter=False)
    result = service.search_parts(SearchFilters())
    assert result.total_count == 7
    assert result.page_size == 20


def _broken_factory(exc):
    def factory():
        session = MagicMock()
        session.execute.side_effect = exc
        return session
    return factory


def test_store_failure_becomes_unavailable():
    err = OperationalError("SELECT 1", {}, Exception("connection refused"))
    service = SearchService(_broken_factory(err))
    with pytest.raises(StoreUnavailableError) as exc:
        _search(service, make="Toyota")
    assert "refused" not in exc.value.message


def test_store_timeout_becomes_unavailable():
    def factory():
        session = MagicMock()
        session.execute.side_effect = lambda *a, **kw: time.sleep(0.5)
        return session

    service = SearchService(factory, timeout=0.05)
    with pytest.raises(StoreUnavailableError):
        _search(service, make="Toyota")


def test_featured_parts(search_service, catalog):
    parts = search_service.featured_parts()
    # private seller is rated 3.1
    assert {p.name for p in parts} == {
        "Engine Block", "Brake Pads", "Headlight Assembly", "Gearbox", "Side Mirror",
    }
    assert parts[0].seller.rating == 4.8
    assert len(search_service.featured_parts("2")) == 2


def test_get_part(search_service, marketplace):
    part = search_service.get_part(marketplace["engine_block"].id)
    assert part.name == "Engine Block"
    assert part.category.name == "Engine"
    assert part.seller.latitude == pytest.approx(-26.2041)


def test_get_hidden_part_is_not_found(search_service, marketplace):
    for hidden in marketplace["hidden"]:
        with pytest.raises(NotFoundError) as exc:
            search_service.get_part(hidden.id)
        assert exc.value.message == "Part with this ID does not exist or is not available on marketplace"


def test_suggestions(search_service, catalog):
    assert search_service.suggestions("bra") == ["Brake Pads"]
    assert search_service.suggestions("o", "makes") == []
    assert search_service.suggestions("to", "makes") == ["Toyota"]
    assert search_service.suggestions("x", "models") == []
    assert search_service.suggestions("fo", "models", make="Ford") == ["Focus"]
    assert search_service.suggestions("brake", "sellers") == []


def test_vehicle_makes_and_models(search_service, catalog):
    assert search_service.vehicle_makes() == ["BMW", "Ford", "Toyota"]
    assert search_service.vehicle_models("BMW") == ["X3"]
    with pytest.raises(ValidationError):
        search_service.vehicle_models(" ")


def test_models_facet_respects_filters(search_service, catalog):
    models = search_service.models_facet("BMW", SearchFilters.from_query({"maxPrice": "5000"}))
    assert [(m.value, m.count) for m in models] == [("X3", 2)]


def test_timeout_is_shared_across_store_calls():
    service = SearchService(MagicMock, timeout=0.4)
    started = time.monotonic()
    with pytest.raises(StoreUnavailableError):
        service._run(
            lambda s: time.sleep(0.25),
            lambda s: time.sleep(0.5),
            lambda s: time.sleep(0.75),
        )
    assert time.monotonic() - started < 0.7


def test_base_facet_scope_ignores_filters(session_factory, marketplace):
    service = SearchService(session_factory, facet_scope="base")
    result = _search(service, make="Toyota", minPrice="400", maxPrice="500")
    assert [p.name for p in result.parts] == ["Brake Pads"]
    assert [(f.value, f.count) for f in result.facets.conditions] == [("EXCELLENT", 1), ("GOOD", 1)]
    assert [(r.range, r.count) for r in result.facets.price_ranges] == [("0-1000", 1), ("10000-25000", 1)]

    models = service.models_facet("Toyota", SearchFilters.from_query({"maxPrice": "500"}))
    assert [(m.value, m.count) for m in models] == [("Camry", 2)]


@pytest.mark.parametrize("params", [{"year": "1899"}, {"year": str(10 ** 20)}])
def test_year_out_of_range(params):
    with pytest.raises(ValidationError):
        SearchFilters.from_query(params)


def test_huge_page_rejected_before_store():
    factory = Mock()
    with pytest.raises(ValidationError):
        _search(SearchService(factory), make="Toyota", page=str(10 ** 20))
    factory.assert_not_called()


def test_vehicle_with_visible_parts(search_service, marketplace):
    vehicle = search_service.get_vehicle(marketplace["vehicle"].id)
    assert vehicle.model == "Camry"
    assert {p.name for p in vehicle.parts} == {"Engine Block", "Brake Pads"}

    shady = search_service.get_vehicle(marketplace["hidden"][2].vehicle_id)
    assert shady.parts == []

    with pytest.raises(NotFoundError):
        search_service.get_vehicle("nope")


def test_seller_lookups(search_service, marketplace):
    seller = search_service.get_seller(marketplace["seller"].id)
    assert seller.latitude == pytest.approx(-26.2041)

    page = search_service.seller_parts(marketplace["seller"].id, page="2", page_size="1")
    assert [p.name for p in page.items] == ["Engine Block"]
    assert page.total_pages == 2

    with pytest.raises(NotFoundError):
        search_service.get_seller(marketplace["hidden"][2].seller_id)


def test_seller_search_ordering(search_service, factory):
    factory.seller(business_name="Busy Yard", rating=4.0, total_sales=90)
    factory.seller(business_name="Quiet Yard", rating=4.0, total_sales=3)
    factory.seller(business_name="Top Yard", rating=4.9, total_sales=1)
    factory.seller(business_name="Hidden Yard", rating=5.0, is_verified=False)

    result = search_service.search_sellers(SellerFilters.from_query({"q": "yard"}))
    assert [s.business_name for s in result.items] == ["Top Yard", "Busy Yard", "Quiet Yard"]
    assert result.total_count == 3
    assert all(s.part_count == 0 for s in result.items)
