"""Expiry sweep: stale pending offers, and stale ride sessions when configured."""
import logging
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.clock import utc_now
from app.config import get_settings
from app.database import SessionLocal
from app.errors import StateConflict
from app.models.ride_offer import RideOffer, OfferStatus
from app.models.ride_session import RideSession
from app.services.ride_state import TERMINAL_STATUSES
from app.services.rides import expire_ride

log = logging.getLogger("uvicorn.error")


def expire_stale_offers(db: Session, now=None) -> int:
    """Mark pending offers past expires_at as expired. Returns the number updated."""
    now = now or utc_now()
    count = (
        db.query(RideOffer)
        .filter(RideOffer.status == OfferStatus.pending, RideOffer.expires_at <= now)
        .update({"status": OfferStatus.expired, "responded_at": now}, synchronize_session=False)
    )
    db.commit()
    return count


def expire_stale_sessions(db: Session, now=None) -> int:
    """Expire non-terminal sessions with no activity for ride_session_expire_minutes (0 = off)."""
    minutes = get_settings().ride_session_expire_minutes
    if minutes <= 0:
        return 0
    now = now or utc_now()
    threshold = now - timedelta(minutes=minutes)
    last_activity = func.coalesce(RideSession.updated_at, RideSession.created_at)
    stale = (
        db.query(RideSession)
        .filter(RideSession.status.notin_(TERMINAL_STATUSES), last_activity < threshold)
        .all()
    )
    expired = 0
    for ride in stale:
        try:
            expire_ride(db, ride)
            expired += 1
        except StateConflict:
            # Moved on since we read it; the next sweep re-evaluates
            continue
    return expired


def run_expiry_sweep_job() -> None:
    """Scheduler entry point."""
    db: Session = SessionLocal()
    try:
        offers = expire_stale_offers(db)
        sessions = expire_stale_sessions(db)
        if offers or sessions:
            log.info("[Expiry] expired %d offer(s), %d ride session(s)", offers, sessions)
    except Exception:
        db.rollback()
        log.exception("[Expiry] sweep failed")
    finally:
        db.close()
