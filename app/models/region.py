"""Regions and their pricing configuration: zones, fixed fares, rule versions, modifiers."""
from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, DateTime, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, JSONType
import enum


class ModifierType(str, enum.Enum):
    night = "night"
    peak = "peak"


class ModifierApplication(str, enum.Enum):
    multiply = "multiply"
    add = "add"


class Region(Base):
    __tablename__ = "regions"

    id = Column(Integer, primary_key=True, index=True)
    # Lookups use the single active region per country code
    country_code = Column(String(2), nullable=False, index=True)
    island_name = Column(String(100), nullable=False)
    currency_code = Column(String(3), nullable=False, default="USD")
    distance_unit = Column(String(10), nullable=False, default="km")
    default_pricing_rule_version_id = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    zones = relationship("PricingZone", back_populates="region", order_by="PricingZone.id")


class PricingZone(Base):
    """Circular geofence used for flat-rate pricing."""
    __tablename__ = "pricing_zones"

    id = Column(Integer, primary_key=True, index=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=False, index=True)
    zone_code = Column(String(32), nullable=False)
    zone_name = Column(String(255), nullable=False)

    center_lat = Column(Float, nullable=False)
    center_lng = Column(Float, nullable=False)
    radius_meters = Column(Float, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    region = relationship("Region", back_populates="zones")


class FixedFare(Base):
    """Flat price between two zones; matched in either direction. A NULL zone means 'outside any zone'."""
    __tablename__ = "pricing_fixed_fares"

    id = Column(Integer, primary_key=True, index=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=False, index=True)
    origin_zone_id = Column(Integer, ForeignKey("pricing_zones.id"), nullable=True)
    destination_zone_id = Column(Integer, ForeignKey("pricing_zones.id"), nullable=True)
    amount = Column(Float, nullable=False)
    description = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PricingRuleVersion(Base):
    __tablename__ = "pricing_rule_versions"

    id = Column(Integer, primary_key=True, index=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    version_name = Column(String(100), nullable=True)

    base_fare = Column(Float, nullable=False)
    per_km_rate = Column(Float, nullable=False)

    # One active version per region at a time
    is_active = Column(Boolean, nullable=False, default=False)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PricingModifier(Base):
    __tablename__ = "pricing_modifiers"

    id = Column(Integer, primary_key=True, index=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=False, index=True)
    modifier_type = Column(SQLEnum(ModifierType), nullable=False)
    modifier_name = Column(String(100), nullable=False)
    modifier_application = Column(SQLEnum(ModifierApplication), nullable=False)
    modifier_value = Column(Float, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)

    # night: {"start_hour": 22, "end_hour": 6}
    # peak:  {"days": ["mon", "fri"], "start_hour": 7, "end_hour": 9}
    threshold_config = Column(JSONType, nullable=True)

    # Application order: ascending priority, then id. Multiply/add mixes depend on it.
    priority = Column(Integer, nullable=False, default=100)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
