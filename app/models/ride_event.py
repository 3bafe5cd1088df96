"""Append-only ride event log: the audit trail of every session transition.
No updates or deletes - every record is permanent."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, event
from sqlalchemy.sql import func
from app.database import Base, JSONType


class RideEvent(Base):
    __tablename__ = "ride_events"

    id = Column(Integer, primary_key=True, index=True)
    ride_session_id = Column(Integer, ForeignKey("ride_sessions.id"), nullable=False, index=True)

    # created | discovery_started | discovery_expanded | offer_submitted | offer_selected |
    # confirmed | started | completed | canceled | expired | guest_migrated | verification_token_issued
    event_type = Column(String(32), nullable=False, index=True)

    # rider | driver | system
    actor_type = Column(String(16), nullable=False, default="system")
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    event_data = Column(JSONType, nullable=True)

    # UTC only - server_default
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


@event.listens_for(RideEvent, "before_update")
def _reject_update(mapper, connection, target):
    raise ValueError("ride_events is append-only; updates are not allowed")


@event.listens_for(RideEvent, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ValueError("ride_events is append-only; deletes are not allowed")
