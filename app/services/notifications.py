"""Notification channel: in-app inbox rows plus best-effort push (Expo push API).

Delivery is fire-and-forget. Nothing here raises to the caller: a failed
delivery is logged and never rolls back the ride transition that triggered it.
"""
import logging
from typing import Any, Iterable

import httpx
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.driver import Device
from app.models.notification import Notification
from app.models.ride_session import RideSession

log = logging.getLogger("uvicorn.error")

TYPE_RIDE_REQUEST = "ride_request"
TYPE_OFFER_RECEIVED = "offer_received"
TYPE_OFFER_ACCEPTED = "offer_accepted"
TYPE_OFFER_REJECTED = "offer_rejected"
TYPE_RIDE_CANCELED = "ride_canceled"
TYPE_RIDE_CONFIRMED = "ride_confirmed"


def send_push(db: Session, user_ids: Iterable[int], title: str, body: str, data: dict[str, Any] | None = None) -> bool:
    """Send one push per active device of the users. Returns True if the push API accepted the batch."""
    settings = get_settings()
    ids = list(set(user_ids))
    if not settings.push_enabled or not ids:
        return False
    tokens = [
        d.push_token
        for d in db.query(Device).filter(Device.user_id.in_(ids), Device.is_active.is_(True)).all()
    ]
    if not tokens:
        return False
    messages = [
        {"to": token, "title": title, "body": body, "data": data or {}, "sound": "default"}
        for token in tokens
    ]
    headers = {"Accept": "application/json", "Content-Type": "application/json"}
    if settings.push_access_token:
        headers["Authorization"] = f"Bearer {settings.push_access_token}"
    try:
        with httpx.Client(timeout=settings.notification_timeout_seconds) as client:
            r = client.post(settings.expo_push_url, json=messages, headers=headers)
    except httpx.HTTPError as e:
        log.warning("[Push] request failed: %s: %s", type(e).__name__, e)
        return False
    if not 200 <= r.status_code < 300:
        log.warning("[Push] API failed: status=%s body=%s", r.status_code, r.text[:500])
        return False
    log.info("[Push] sent %d message(s) to %d user(s)", len(messages), len(ids))
    return True


def notify_users(
    db: Session,
    user_ids: Iterable[int],
    notification_type: str,
    title: str,
    body: str,
    *,
    ride_session_id: int | None = None,
    meta: dict[str, Any] | None = None,
) -> int:
    """Write inbox rows and push. Returns how many users got an inbox row (0 on failure)."""
    ids = sorted(set(u for u in user_ids if u is not None))
    if not ids:
        return 0
    try:
        for user_id in ids:
            db.add(Notification(
                user_id=user_id,
                ride_session_id=ride_session_id,
                type=notification_type,
                title=title,
                body=body,
                meta=meta,
            ))
        db.commit()
    except Exception:
        db.rollback()
        log.exception("[Notify] inbox write failed for type=%s ride=%s", notification_type, ride_session_id)
        return 0
    try:
        send_push(db, ids, title, body, data={"type": notification_type, "ride_session_id": ride_session_id, **(meta or {})})
    except Exception:
        log.exception("[Push] unexpected error for type=%s ride=%s", notification_type, ride_session_id)
    return len(ids)


def already_notified_driver_ids(db: Session, ride_session_id: int) -> set[int]:
    rows = (
        db.query(Notification.user_id)
        .filter(Notification.ride_session_id == ride_session_id, Notification.type == TYPE_RIDE_REQUEST)
        .all()
    )
    return {r.user_id for r in rows}


def notify_ride_request(db: Session, ride: RideSession, driver_ids: list[int], wave: int) -> int:
    return notify_users(
        db,
        driver_ids,
        TYPE_RIDE_REQUEST,
        "New ride request",
        f"{ride.origin_label} → {ride.destination_label} · ${ride.fare_amount:.2f}",
        ride_session_id=ride.id,
        meta={"wave": wave, "fare_amount": ride.fare_amount, "request_mode": ride.request_mode.value},
    )


def notify_offer_received(db: Session, ride: RideSession, amount: float, price_label: str) -> int:
    # Guest riders have no inbox; they poll the offers read model
    if not ride.rider_user_id:
        return 0
    return notify_users(
        db,
        [ride.rider_user_id],
        TYPE_OFFER_RECEIVED,
        "New offer",
        f"A driver offered ${amount:.2f} for your ride to {ride.destination_label}.",
        ride_session_id=ride.id,
        meta={"amount": amount, "price_label": price_label},
    )


def notify_offer_results(db: Session, ride: RideSession, accepted_driver_id: int, rejected_driver_ids: list[int]) -> None:
    notify_users(
        db,
        [accepted_driver_id],
        TYPE_OFFER_ACCEPTED,
        "Your offer was accepted",
        f"Head to {ride.origin_label}. Verify the rider's code at pickup.",
        ride_session_id=ride.id,
        meta={"final_amount": ride.final_agreed_amount},
    )
    notify_users(
        db,
        rejected_driver_ids,
        TYPE_OFFER_REJECTED,
        "Ride taken",
        "The rider chose another offer.",
        ride_session_id=ride.id,
    )


def notify_ride_canceled(db: Session, ride: RideSession, driver_id: int | None, reason: str | None) -> int:
    if not driver_id:
        return 0
    return notify_users(
        db,
        [driver_id],
        TYPE_RIDE_CANCELED,
        "Ride canceled",
        f"The rider canceled the ride to {ride.destination_label}." + (f" Reason: {reason}" if reason else ""),
        ride_session_id=ride.id,
        meta={"reason": reason},
    )
