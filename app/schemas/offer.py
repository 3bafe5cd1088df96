"""Driver offer schemas."""
from datetime import datetime
from pydantic import BaseModel, Field, model_validator
from app.models.ride_offer import OfferType, OfferStatus, PriceLabel


class OfferCreate(BaseModel):
    offer_type: OfferType
    # Required for counter offers; accept offers always carry the quoted fare
    amount: float | None = Field(default=None, gt=0)
    note: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def counter_needs_amount(self):
        if self.offer_type == OfferType.counter and self.amount is None:
            raise ValueError("amount is required for counter offers")
        return self


class OfferResponse(BaseModel):
    id: int
    ride_session_id: int
    driver_user_id: int
    offer_type: OfferType
    offer_amount: float
    price_label: PriceLabel
    note: str | None = None
    status: OfferStatus
    created_at: datetime | None = None
    expires_at: datetime

    class Config:
        from_attributes = True


class SelectOfferResponse(BaseModel):
    ride_session_id: int
    offer_id: int
    driver_user_id: int
    final_amount: float
    new_status: str = "hold"
