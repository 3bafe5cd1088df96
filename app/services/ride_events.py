"""Append-only ride event log. Never update or delete - immutable audit trail."""
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from app.models.ride_event import RideEvent

ACTOR_RIDER = "rider"
ACTOR_DRIVER = "driver"
ACTOR_SYSTEM = "system"

EVENT_CREATED = "created"
EVENT_DISCOVERY_STARTED = "discovery_started"
EVENT_DISCOVERY_EXPANDED = "discovery_expanded"
EVENT_OFFER_SUBMITTED = "offer_submitted"
EVENT_OFFER_SELECTED = "offer_selected"
EVENT_VERIFICATION_ISSUED = "verification_token_issued"
EVENT_VERIFICATION_FAILED = "verification_failed"
EVENT_CONFIRMED = "confirmed"
EVENT_STARTED = "started"
EVENT_COMPLETED = "completed"
EVENT_CANCELED = "canceled"
EVENT_EXPIRED = "expired"
EVENT_GUEST_MIGRATED = "guest_migrated"

# Column limits (match model)
_EVENT_TYPE_LEN = 32
_ACTOR_TYPE_LEN = 16


def _sanitize_value(v: Any) -> Any:
    """Convert to JSON-serializable value so event_data never raises on INSERT."""
    if v is None:
        return None
    if isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, enum.Enum):
        return getattr(v, "value", str(v))
    if isinstance(v, dict):
        return {str(k): _sanitize_value(x) for k, x in v.items()}
    if isinstance(v, (list, tuple, set)):
        return [_sanitize_value(x) for x in v]
    return str(v)


def _sanitize_data(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if data is None:
        return None
    return {str(k): _sanitize_value(v) for k, v in data.items()}


def append_event(
    db: Session,
    ride_session_id: int,
    event_type: str,
    *,
    actor_type: str = ACTOR_SYSTEM,
    actor_user_id: int | None = None,
    data: dict[str, Any] | None = None,
) -> RideEvent:
    """Append one immutable event. Commit remains with the caller so the event
    lands in the same transaction as the state change it records."""
    entry = RideEvent(
        ride_session_id=ride_session_id,
        event_type=(event_type or "")[:_EVENT_TYPE_LEN],
        actor_type=(actor_type or ACTOR_SYSTEM)[:_ACTOR_TYPE_LEN],
        actor_user_id=actor_user_id,
        event_data=_sanitize_data(data),
    )
    db.add(entry)
    db.flush()
    return entry


def list_events(db: Session, ride_session_id: int) -> list[RideEvent]:
    return (
        db.query(RideEvent)
        .filter(RideEvent.ride_session_id == ride_session_id)
        .order_by(RideEvent.id)
        .all()
    )
