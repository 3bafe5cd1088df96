"""Guest identities: issue, validate, and one-time migration to a signed-in user."""
import logging
import secrets
from datetime import timedelta

from sqlalchemy.orm import Session

from app.clock import utc_now, ensure_utc
from app.config import get_settings
from app.errors import NotFound, StateConflict
from app.models.guest_identity import GuestIdentity
from app.models.ride_session import RideSession
from app.services.ride_events import append_event, ACTOR_RIDER, EVENT_GUEST_MIGRATED

log = logging.getLogger("uvicorn.error")

GUEST_NOT_FOUND = "not_found"
GUEST_EXPIRED = "expired"
GUEST_CLAIMED = "claimed"


def issue_guest_identity(db: Session) -> GuestIdentity:
    settings = get_settings()
    guest = GuestIdentity(
        token=secrets.token_urlsafe(32),
        expires_at=utc_now() + timedelta(days=settings.guest_identity_expire_days),
    )
    db.add(guest)
    db.commit()
    db.refresh(guest)
    return guest


def validate_guest_identity(db: Session, token: str) -> tuple[GuestIdentity | None, str | None]:
    """Returns (guest, None) for a usable token, else (None, reason). Refreshes last_used_at."""
    token = (token or "").strip()
    guest = db.query(GuestIdentity).filter(GuestIdentity.token == token).first() if token else None
    if not guest:
        return None, GUEST_NOT_FOUND
    if ensure_utc(guest.expires_at) <= utc_now():
        return None, GUEST_EXPIRED
    if guest.claimed_by_user_id is not None:
        return None, GUEST_CLAIMED
    guest.last_used_at = utc_now()
    db.commit()
    db.refresh(guest)
    return guest, None


def migrate_guest_identity(db: Session, token: str, user_id: int) -> int:
    """Move every ride of the guest identity to user_id and consume the token.

    One transaction: the claim is a conditional UPDATE that only succeeds while
    the token is unclaimed, so of two concurrent or repeated calls exactly one
    migrates and the other gets StateConflict without mutating anything.
    """
    guest = db.query(GuestIdentity).filter(GuestIdentity.token == (token or "").strip()).first()
    if not guest:
        raise NotFound("Guest token not found")
    if guest.claimed_by_user_id is not None:
        raise StateConflict("Guest token already claimed")

    now = utc_now()
    claimed = (
        db.query(GuestIdentity)
        .filter(GuestIdentity.id == guest.id, GuestIdentity.claimed_by_user_id.is_(None))
        .update({"claimed_by_user_id": user_id, "claimed_at": now}, synchronize_session=False)
    )
    if claimed != 1:
        db.rollback()
        raise StateConflict("Guest token already claimed")

    ride_ids = [
        row.id for row in db.query(RideSession.id).filter(RideSession.guest_identity_id == guest.id).all()
    ]
    migrated = 0
    if ride_ids:
        migrated = (
            db.query(RideSession)
            .filter(RideSession.guest_identity_id == guest.id)
            .update({"rider_user_id": user_id, "guest_identity_id": None}, synchronize_session=False)
        )
    for ride_id in ride_ids:
        append_event(
            db,
            ride_id,
            EVENT_GUEST_MIGRATED,
            actor_type=ACTOR_RIDER,
            actor_user_id=user_id,
            data={"guest_identity_id": guest.id},
        )
    db.commit()
    log.info("[Guest] identity %s claimed by user %s, migrated %d ride(s)", guest.id, user_id, migrated)
    return migrated
