"""Driver offers on a ride session."""
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from app.database import Base
import enum


class OfferType(str, enum.Enum):
    accept = "accept"
    counter = "counter"


class OfferStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    expired = "expired"


class PriceLabel(str, enum.Enum):
    good_deal = "good_deal"
    normal = "normal"
    pricier = "pricier"


class RideOffer(Base):
    __tablename__ = "ride_offers"

    id = Column(Integer, primary_key=True, index=True)
    ride_session_id = Column(Integer, ForeignKey("ride_sessions.id"), nullable=False, index=True)
    driver_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    offer_type = Column(SQLEnum(OfferType), nullable=False)
    offer_amount = Column(Float, nullable=False)
    price_label = Column(SQLEnum(PriceLabel), nullable=False)
    note = Column(String(500), nullable=True)

    status = Column(SQLEnum(OfferStatus), nullable=False, default=OfferStatus.pending, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)
