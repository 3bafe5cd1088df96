"""Ride session state machine.

    created -> discovery -> hold -> confirmed -> active -> completed
    created | discovery | hold -> canceled
    any non-terminal -> expired

Every transition is validated against the status read from the database and
committed with a compare-and-set UPDATE (WHERE status = <status read>). A
concurrent writer makes the UPDATE match zero rows, which is reported as a
StateConflict; nothing is changed in that case.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.clock import utc_now
from app.errors import NotFound, StateConflict
from app.models.ride_session import RideSession, RideStatus
from app.services.ride_events import append_event, ACTOR_SYSTEM

log = logging.getLogger("uvicorn.error")

TERMINAL_STATUSES = frozenset({RideStatus.completed, RideStatus.canceled, RideStatus.expired})

ALLOWED_TRANSITIONS: dict[RideStatus, frozenset[RideStatus]] = {
    RideStatus.created: frozenset({RideStatus.discovery, RideStatus.canceled, RideStatus.expired}),
    RideStatus.discovery: frozenset({RideStatus.hold, RideStatus.canceled, RideStatus.expired}),
    RideStatus.hold: frozenset({RideStatus.confirmed, RideStatus.canceled, RideStatus.expired}),
    RideStatus.confirmed: frozenset({RideStatus.active, RideStatus.expired}),
    RideStatus.active: frozenset({RideStatus.completed, RideStatus.expired}),
    RideStatus.completed: frozenset(),
    RideStatus.canceled: frozenset(),
    RideStatus.expired: frozenset(),
}

# Timestamp column stamped when entering a status
_STATUS_TIMESTAMPS = {
    RideStatus.discovery: "discovery_started_at",
    RideStatus.confirmed: "confirmed_at",
    RideStatus.active: "started_at",
    RideStatus.completed: "completed_at",
    RideStatus.canceled: "canceled_at",
    RideStatus.expired: "expired_at",
}

_CONFLICT_MESSAGES = {
    RideStatus.discovery: "Discovery can only start for a newly created ride (current status: {status}).",
    RideStatus.hold: "This ride is no longer accepting offers (current status: {status}).",
    RideStatus.confirmed: "The ride can only be confirmed while a driver is on hold (current status: {status}).",
    RideStatus.active: "The ride can only start after pickup is confirmed (current status: {status}).",
    RideStatus.completed: "Only an active ride can be completed (current status: {status}).",
    RideStatus.canceled: "This ride can no longer be canceled (current status: {status}).",
    RideStatus.expired: "This ride has already ended (current status: {status}).",
}


def can_transition(current: RideStatus, target: RideStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def current_status(db: Session, ride_session_id: int) -> RideStatus:
    """Persisted status, read from the database rather than the identity map."""
    status = db.query(RideSession.status).filter(RideSession.id == ride_session_id).scalar()
    if status is None:
        raise NotFound("Ride session not found")
    return RideStatus(status)


def transition(
    db: Session,
    ride_session_id: int,
    target: RideStatus,
    *,
    event_type: str,
    actor_type: str = ACTOR_SYSTEM,
    actor_user_id: int | None = None,
    values: dict[str, Any] | None = None,
    event_data: dict[str, Any] | None = None,
    expected: RideStatus | None = None,
) -> RideStatus:
    """Move the session to target and append the event. Returns the previous status.

    expected, when given, must equal the persisted status. The caller commits;
    on StateConflict the caller's transaction is rolled back here.
    """
    previous = current_status(db, ride_session_id)
    if (expected is not None and previous != expected) or not can_transition(previous, target):
        db.rollback()
        message = _CONFLICT_MESSAGES.get(target, "Invalid ride transition (current status: {status}).")
        raise StateConflict(message.format(status=previous.value), current_status=previous.value)

    update = dict(values or {})
    update["status"] = target
    stamp = _STATUS_TIMESTAMPS.get(target)
    if stamp and stamp not in update:
        update[stamp] = utc_now()

    rows = (
        db.query(RideSession)
        .filter(RideSession.id == ride_session_id, RideSession.status == previous)
        .update(update, synchronize_session=False)
    )
    if rows != 1:
        db.rollback()
        log.info("[RideState] lost race on ride %s: %s -> %s", ride_session_id, previous.value, target.value)
        raise StateConflict(
            "The ride was updated by someone else. Refresh and try again.",
            current_status=previous.value,
        )

    data = {"from_status": previous.value, "to_status": target.value}
    data.update(event_data or {})
    append_event(
        db,
        ride_session_id,
        event_type,
        actor_type=actor_type,
        actor_user_id=actor_user_id,
        data=data,
    )
    return previous
