# partpal/models.py
"""SQLAlchemy ORM models for the marketplace entities.

Sellers own vehicles, vehicles own parts. Parts, vehicles and sellers are
maintained by the inventory system; this service reads them and only ever
appends `AnalyticsEvent` rows.
"""
import enum
import uuid

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Float, ForeignKey, Index, Integer, JSON,
    Numeric, String, Text, func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from .db import Base

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid.uuid4())


class PartCondition(str, enum.Enum):
    NEW = "NEW"
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class PartStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"


class BusinessType(str, enum.Enum):
    SCRAP_YARD = "SCRAP_YARD"
    DISMANTLER = "DISMANTLER"
    PRIVATE = "PRIVATE"


class EventType(str, enum.Enum):
    PART_VIEW = "PART_VIEW"
    SEARCH = "SEARCH"
    SELLER_CONTACT = "SELLER_CONTACT"


class Seller(Base):
    __tablename__ = "sellers"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, unique=True)
    business_name = Column(Text, nullable=False)
    business_type = Column(Enum(BusinessType, name="business_type"), nullable=False)
    description = Column(Text)
    city = Column(Text)
    province = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    phone = Column(Text)
    whatsapp = Column(Text)
    email = Column(Text)
    website = Column(Text)
    is_verified = Column(Boolean, nullable=False, default=False)
    rating = Column(Float, nullable=False, default=0.0)
    total_sales = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    vehicles = relationship("Vehicle", back_populates="seller")
    parts = relationship("Part", back_populates="seller")


class Vehicle(Base):
    __tablename__ = "vehicles"
    id = Column(String(36), primary_key=True, default=new_id)
    vin = Column(String(17), nullable=False, unique=True)
    year = Column(Integer, nullable=False)
    make = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    variant = Column(Text)
    engine_size = Column(Text)
    fuel_type = Column(Text)
    transmission = Column(Text)
    color = Column(Text)
    mileage = Column(Integer)
    condition = Column(Text)
    seller_id = Column(String(36), ForeignKey("sellers.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    seller = relationship("Seller", back_populates="vehicles")
    parts = relationship("Part", back_populates="vehicle")


class Category(Base):
    __tablename__ = "categories"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    description = Column(Text)
    parent_id = Column(String(36), ForeignKey("categories.id"))
    is_active = Column(Boolean, nullable=False, default=True)

    parent = relationship("Category", remote_side=[id])


class Part(Base):
    __tablename__ = "parts"
    id = Column(String(36), primary_key=True, default=new_id)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)
    seller_id = Column(String(36), ForeignKey("sellers.id"), nullable=False, index=True)
    category_id = Column(String(36), ForeignKey("categories.id"))
    name = Column(Text, nullable=False)
    part_number = Column(Text)
    description = Column(Text)
    condition = Column(Enum(PartCondition, name="part_condition"), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="ZAR")
    status = Column(Enum(PartStatus, name="part_status"), nullable=False, default=PartStatus.AVAILABLE)
    location = Column(Text)
    images = Column(JSONType, nullable=False, default=list)
    is_listed_on_marketplace = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    vehicle = relationship("Vehicle", back_populates="parts")
    seller = relationship("Seller", back_populates="parts")
    category = relationship("Category")


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"
    id = Column(String(36), primary_key=True, default=new_id)
    event_type = Column(Enum(EventType, name="event_type"), nullable=False)
    # loose references: an event may outlive its part or seller
    part_id = Column(String(36))
    seller_id = Column(String(36))
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSONType)
    session_id = Column(Text)
    user_agent = Column(Text)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

Index("idx_parts_marketplace", Part.is_listed_on_marketplace, Part.status)
Index("idx_parts_price", Part.price)
Index("idx_vehicles_make_model", Vehicle.make, Vehicle.model)
Index("idx_events_type_timestamp", AnalyticsEvent.event_type, AnalyticsEvent.timestamp)
Index("idx_events_part", AnalyticsEvent.part_id)
