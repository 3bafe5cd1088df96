"""Authenticated identities: riders and drivers."""
from sqlalchemy import Column, Integer, String, Enum as SQLEnum, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base
import enum


class UserRole(str, enum.Enum):
    rider = "rider"
    driver = "driver"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", "role", name="uq_users_email_role"),)

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False)

    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    preferred_language = Column(String(10), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
