"""Driver profiles, rider favorites and push devices."""
from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class DriverProfile(Base):
    __tablename__ = "driver_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    display_name = Column(String(255), nullable=False)
    phone_number = Column(String(50), nullable=True)
    vehicle_type = Column(String(50), nullable=True)
    vehicle_make = Column(String(100), nullable=True)
    vehicle_model = Column(String(100), nullable=True)
    license_plate = Column(String(20), nullable=True)

    # Only drivers accepting requests are ever put in a discovery wave
    is_accepting_requests = Column(Boolean, nullable=False, default=True)
    allow_direct_requests = Column(Boolean, nullable=False, default=True)

    rating_average = Column(Float, nullable=True)
    rating_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", backref="driver_profile")


class DriverFavorite(Base):
    """A rider's favorite driver; favorites make up discovery wave 0."""
    __tablename__ = "driver_favorites"
    __table_args__ = (UniqueConstraint("rider_user_id", "driver_user_id", name="uq_driver_favorites_pair"),)

    id = Column(Integer, primary_key=True, index=True)
    rider_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    driver_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Device(Base):
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    push_token = Column(String(255), unique=True, nullable=False)
    platform = Column(String(20), nullable=False)  # ios | android
    device_name = Column(String(255), nullable=True)
    app_version = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    last_used_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
