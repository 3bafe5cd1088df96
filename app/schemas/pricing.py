"""Fare quote schemas."""
from typing import Any
from pydantic import BaseModel, Field


class Coordinate(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class FareRequest(BaseModel):
    origin: Coordinate
    destination: Coordinate
    region_id: int | None = None


class FareResult(BaseModel):
    amount: float
    currency_code: str
    method: str  # zone_fixed | distance_fallback
    region_id: int
    pricing_rule_version_id: int | None = None
    metadata: dict[str, Any]


class FareEstimateResponse(BaseModel):
    amount: float
    method: str = "offline_estimate"
