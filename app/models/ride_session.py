"""Ride sessions: one per ride attempt, owned by a rider user or a guest identity."""
from sqlalchemy import (
    Column, Integer, String, Float, ForeignKey, DateTime, Enum as SQLEnum,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.sql import func
from app.database import Base, JSONType
import enum


class RideStatus(str, enum.Enum):
    created = "created"
    discovery = "discovery"
    hold = "hold"
    confirmed = "confirmed"
    active = "active"
    completed = "completed"
    canceled = "canceled"
    expired = "expired"


class RequestMode(str, enum.Enum):
    broadcast = "broadcast"
    direct = "direct"


class RideSession(Base):
    __tablename__ = "ride_sessions"
    __table_args__ = (
        CheckConstraint(
            "(rider_user_id IS NULL) <> (guest_identity_id IS NULL)",
            name="ck_ride_sessions_single_rider_identity",
        ),
        UniqueConstraint("rider_user_id", "client_reference", name="uq_ride_sessions_user_client_ref"),
        UniqueConstraint("guest_identity_id", "client_reference", name="uq_ride_sessions_guest_client_ref"),
    )

    id = Column(Integer, primary_key=True, index=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=False)

    # Exactly one of these is set; migration moves guest sessions to a user
    rider_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    guest_identity_id = Column(Integer, ForeignKey("guest_identities.id"), nullable=True, index=True)

    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    origin_label = Column(String(255), nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    destination_label = Column(String(255), nullable=False)
    destination_freeform_name = Column(String(255), nullable=True)

    fare_amount = Column(Float, nullable=False)  # platform-quoted fare
    pricing_rule_version_id = Column(Integer, ForeignKey("pricing_rule_versions.id"), nullable=True)
    pricing_metadata = Column(JSONType, nullable=True)

    request_mode = Column(SQLEnum(RequestMode), nullable=False, default=RequestMode.broadcast)
    target_driver_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    status = Column(SQLEnum(RideStatus), nullable=False, default=RideStatus.created, index=True)

    selected_offer_id = Column(Integer, nullable=True)
    selected_driver_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    final_agreed_amount = Column(Float, nullable=True)

    # jti of the most recently issued verification token; older tokens are superseded
    verification_token_jti = Column(String(64), nullable=True)

    # Local id a client synthesized while offline; makes reconciliation idempotent
    client_reference = Column(String(64), nullable=True)

    cancel_reason = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    discovery_started_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
