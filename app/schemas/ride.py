"""Ride session schemas."""
from datetime import datetime
from typing import Any
from pydantic import BaseModel, Field, model_validator
from app.models.ride_session import RideStatus, RequestMode


class RideLocation(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    label: str = Field(min_length=1, max_length=255)


class RideDestination(RideLocation):
    freeform_name: str | None = None


class RideSessionCreate(BaseModel):
    origin: RideLocation
    destination: RideDestination
    fare_amount: float = Field(ge=0)
    pricing_rule_version_id: int | None = None
    pricing_metadata: dict[str, Any] | None = None
    request_mode: RequestMode = RequestMode.broadcast
    target_driver_id: int | None = None
    region_id: int | None = None
    # Local id the client used while offline
    client_reference: str | None = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def direct_needs_target(self):
        if self.request_mode == RequestMode.direct and not self.target_driver_id:
            raise ValueError("target_driver_id is required for direct requests")
        if self.request_mode == RequestMode.broadcast and self.target_driver_id:
            raise ValueError("target_driver_id is only allowed for direct requests")
        return self


class RideSessionResponse(BaseModel):
    id: int
    region_id: int
    rider_user_id: int | None
    guest_identity_id: int | None
    status: RideStatus
    origin_lat: float
    origin_lng: float
    origin_label: str
    destination_lat: float
    destination_lng: float
    destination_label: str
    destination_freeform_name: str | None = None
    fare_amount: float
    pricing_rule_version_id: int | None = None
    pricing_metadata: dict[str, Any] | None = None
    request_mode: RequestMode
    target_driver_id: int | None = None
    selected_offer_id: int | None = None
    selected_driver_id: int | None = None
    final_agreed_amount: float | None = None
    client_reference: str | None = None
    cancel_reason: str | None = None
    created_at: datetime | None = None
    discovery_started_at: datetime | None = None
    confirmed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    canceled_at: datetime | None = None
    expired_at: datetime | None = None

    class Config:
        from_attributes = True


class StartDiscoveryRequest(BaseModel):
    wave: int = Field(default=0, ge=0)


class StartDiscoveryResponse(BaseModel):
    ride_session_id: int
    wave: int
    notified_count: int


class CancelRideRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class TransitionResponse(BaseModel):
    ride_session_id: int
    previous_status: RideStatus
    new_status: RideStatus


class RideEventResponse(BaseModel):
    id: int
    event_type: str
    actor_type: str
    actor_user_id: int | None
    event_data: dict[str, Any] | None
    created_at: datetime

    class Config:
        from_attributes = True
