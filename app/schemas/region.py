"""Region and pricing configuration read models."""
from pydantic import BaseModel
from app.models.region import ModifierType, ModifierApplication


class RegionResponse(BaseModel):
    id: int
    country_code: str
    island_name: str
    currency_code: str
    distance_unit: str
    is_active: bool

    class Config:
        from_attributes = True


class PricingZoneResponse(BaseModel):
    id: int
    zone_code: str
    zone_name: str
    center_lat: float
    center_lng: float
    radius_meters: float

    class Config:
        from_attributes = True


class FixedFareResponse(BaseModel):
    id: int
    origin_zone_id: int | None
    destination_zone_id: int | None
    amount: float
    description: str | None

    class Config:
        from_attributes = True


class PricingRuleVersionResponse(BaseModel):
    id: int
    version_number: int
    version_name: str | None
    base_fare: float
    per_km_rate: float

    class Config:
        from_attributes = True


class PricingModifierResponse(BaseModel):
    id: int
    modifier_type: ModifierType
    modifier_name: str
    modifier_application: ModifierApplication
    modifier_value: float
    threshold_config: dict | None
    priority: int

    class Config:
        from_attributes = True


class RegionPricingResponse(BaseModel):
    region: RegionResponse
    active_rule_version: PricingRuleVersionResponse | None
    zones: list[PricingZoneResponse]
    fixed_fares: list[FixedFareResponse]
    modifiers: list[PricingModifierResponse]
