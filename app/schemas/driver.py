"""Driver profile, favorites and device schemas."""
from pydantic import BaseModel, Field


class DriverProfileUpdate(BaseModel):
    display_name: str = Field(min_length=1, max_length=255)
    phone_number: str | None = None
    vehicle_type: str | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    license_plate: str | None = None
    is_accepting_requests: bool = True
    allow_direct_requests: bool = True


class DriverProfileResponse(BaseModel):
    user_id: int
    display_name: str
    vehicle_type: str | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    license_plate: str | None = None
    is_accepting_requests: bool
    allow_direct_requests: bool
    rating_average: float | None = None
    rating_count: int = 0

    class Config:
        from_attributes = True


class DeviceRegister(BaseModel):
    push_token: str = Field(min_length=1, max_length=255)
    platform: str = Field(pattern=r"^(ios|android)$")
    device_name: str | None = None
    app_version: str | None = None
