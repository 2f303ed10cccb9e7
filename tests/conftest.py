# tests/conftest.py
"""Shared fixtures: a throwaway SQLite database per test and a seeded marketplace."""
import itertools
import os
from datetime import datetime, timedelta, timezone

import pytest

# the app refuses to import without a database URL; tests bind their own engine
os.environ.setdefault("POSTGRES_URL", "sqlite://")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from partpal.db import Base, get_db, get_session_factory
from partpal.main import app
from partpal.models import (
    BusinessType, Category, Part, PartCondition, PartStatus, Seller, Vehicle,
)
from partpal.search import SearchService

BASE_TIME = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine(tmp_path):
    # file-backed so concurrent search sessions each get a real connection
    eng = create_engine(
        f"sqlite:///{tmp_path / 'partpal.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def search_service(session_factory):
    return SearchService(session_factory, timeout=5, facet_scope="filtered", require_filter=True)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


class Factory:
    """Creates committed marketplace rows with sensible defaults."""

    def __init__(self, session):
        self.session = session
        self._seq = itertools.count(1)

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        return obj

    def seller(self, **kw):
        n = next(self._seq)
        data = dict(
            user_id=f"user-{n}",
            business_name=f"Yard {n}",
            business_type=BusinessType.SCRAP_YARD,
            city="Johannesburg",
            province="Gauteng",
            is_verified=True,
            rating=4.5,
            total_sales=0,
        )
        data.update(kw)
        return self._save(Seller(**data))

    def vehicle(self, seller, **kw):
        n = next(self._seq)
        data = dict(
            vin=f"VIN{n:014d}",
            year=2018,
            make="Toyota",
            model="Corolla",
            seller_id=seller.id,
        )
        data.update(kw)
        return self._save(Vehicle(**data))

    def part(self, vehicle, **kw):
        n = next(self._seq)
        data = dict(
            name=f"Part {n}",
            condition=PartCondition.GOOD,
            price=1000,
            status=PartStatus.AVAILABLE,
            is_listed_on_marketplace=True,
            vehicle_id=vehicle.id,
            seller_id=vehicle.seller_id,
            images=[],
            created_at=BASE_TIME + timedelta(minutes=n),
        )
        data.update(kw)
        return self._save(Part(**data))

    def category(self, **kw):
        data = dict(name="Engine", is_active=True)
        data.update(kw)
        return self._save(Category(**data))


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def marketplace(factory):
    """Two visible Toyota parts plus rows that must never be visible."""
    gauteng = factory.seller(business_name="AutoParts Johannesburg", province="Gauteng",
                             city="Johannesburg", latitude=-26.2041, longitude=28.0473, rating=4.8)
    toyota = factory.vehicle(gauteng, make="Toyota", model="Camry", year=2018)
    engine_block = factory.part(toyota, name="Engine Block", part_number="TOY-ENG-001",
                                description="Complete 2.0L block", price=15000,
                                condition=PartCondition.EXCELLENT,
                                category_id=factory.category().id)
    brake_pads = factory.part(toyota, name="Brake Pads", part_number="TOY-BRK-001",
                              price=450, condition=PartCondition.GOOD)

    # not visible: unlisted, sold, unverified seller
    hidden_unlisted = factory.part(toyota, name="Door Handle", price=180,
                                   condition=PartCondition.FAIR, is_listed_on_marketplace=False)
    hidden_sold = factory.part(toyota, name="Brake Disc", price=470,
                               condition=PartCondition.GOOD, status=PartStatus.SOLD)
    shady = factory.seller(business_name="Unverified Spares", is_verified=False)
    shady_toyota = factory.vehicle(shady, make="Toyota", model="Camry", year=2018)
    hidden_unverified = factory.part(shady_toyota, name="Brake Pads", price=450,
                                     condition=PartCondition.GOOD)

    return {
        "seller": gauteng,
        "vehicle": toyota,
        "engine_block": engine_block,
        "brake_pads": brake_pads,
        "hidden": [hidden_unlisted, hidden_sold, hidden_unverified],
    }


@pytest.fixture
def catalog(factory, marketplace):
    """The Toyota marketplace plus a Cape Town BMW dismantler and a private Ford seller."""
    cape = factory.seller(business_name="Cape Town Parts", province="Western Cape", city="Cape Town",
                          business_type=BusinessType.DISMANTLER, latitude=-33.9249,
                          longitude=18.4241, rating=4.2)
    bmw = factory.vehicle(cape, make="BMW", model="X3", year=2018)
    headlight = factory.part(bmw, name="Headlight Assembly", part_number="BMW-HDL-001",
                             price=3200, condition=PartCondition.EXCELLENT)
    gearbox = factory.part(bmw, name="Gearbox", price=26000, condition=PartCondition.FAIR)
    mirror = factory.part(bmw, name="Side Mirror", price=1000, condition=PartCondition.NEW)

    private = factory.seller(business_name="Sipho's Garage", province="KwaZulu-Natal", city="Durban",
                             business_type=BusinessType.PRIVATE, rating=3.1)
    ford = factory.vehicle(private, make="Ford", model="Focus", year=2019)
    wheel = factory.part(ford, name="Alloy Wheel", price=5000, condition=PartCondition.POOR)
    radiator = factory.part(ford, name="Radiator", price=9999.99, condition=PartCondition.GOOD)

    return dict(marketplace, cape=cape, private=private, headlight=headlight, gearbox=gearbox,
                mirror=mirror, wheel=wheel, radiator=radiator)
