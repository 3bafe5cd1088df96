"""Ride session operations: creation, ownership, cancel, verification and ride progress."""
import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.clock import utc_now
from app.errors import Forbidden, NotAuthorized, NotFound, StateConflict, ValidationFailed, VerificationFailed
from app.models.driver import DriverProfile
from app.models.guest_identity import GuestIdentity
from app.models.ride_offer import RideOffer, OfferStatus
from app.models.ride_session import RideSession, RideStatus, RequestMode
from app.models.user import User, UserRole
from app.schemas.ride import RideSessionCreate
from app.services import notifications
from app.services import verification_token as vt
from app.services.pricing import resolve_region
from app.services.ride_events import (
    append_event,
    ACTOR_DRIVER,
    ACTOR_RIDER,
    EVENT_CREATED,
    EVENT_CANCELED,
    EVENT_CONFIRMED,
    EVENT_STARTED,
    EVENT_COMPLETED,
    EVENT_EXPIRED,
    EVENT_VERIFICATION_ISSUED,
    EVENT_VERIFICATION_FAILED,
)
from app.services.ride_state import current_status, transition

log = logging.getLogger("uvicorn.error")

# Statuses in which the rider may (re)issue the pickup token
VERIFICATION_ISSUABLE_STATUSES = (RideStatus.created, RideStatus.discovery, RideStatus.hold)


@dataclass
class RiderIdentity:
    """The caller creating or owning rides: a signed-in rider or a guest identity."""
    user: User | None = None
    guest: GuestIdentity | None = None

    @property
    def user_id(self) -> int | None:
        return self.user.id if self.user else None

    def owns(self, ride: RideSession) -> bool:
        if self.user and ride.rider_user_id == self.user.id:
            return True
        if self.guest and ride.guest_identity_id == self.guest.id:
            return True
        return False

    def owner_filter(self, q):
        if self.user:
            return q.filter(RideSession.rider_user_id == self.user.id)
        return q.filter(RideSession.guest_identity_id == self.guest.id)


def _find_by_client_reference(db: Session, identity: RiderIdentity, client_reference: str) -> RideSession | None:
    return identity.owner_filter(
        db.query(RideSession).filter(RideSession.client_reference == client_reference)
    ).first()


def _check_direct_target(db: Session, target_driver_id: int) -> None:
    profile = db.query(DriverProfile).filter(DriverProfile.user_id == target_driver_id).first()
    if not profile:
        raise NotFound("Driver not found")
    if not profile.allow_direct_requests:
        raise ValidationFailed("This driver does not accept direct requests.")


def _touch_unclaimed_guest(db: Session, guest: GuestIdentity) -> None:
    # Fails once the identity is claimed; runs in the ride insert transaction.
    rows = (
        db.query(GuestIdentity)
        .filter(GuestIdentity.id == guest.id, GuestIdentity.claimed_by_user_id.is_(None))
        .update({"last_used_at": utc_now()}, synchronize_session=False)
    )
    if rows != 1:
        db.rollback()
        raise NotAuthorized("Guest token invalid (claimed)")


def create_ride_session(db: Session, data: RideSessionCreate, identity: RiderIdentity) -> tuple[RideSession, bool]:
    """Create a session in 'created'. Returns (ride, created).

    With a client_reference the call is idempotent per rider: reconciling a
    ride the client started offline returns the existing session.
    """
    if data.client_reference:
        existing = _find_by_client_reference(db, identity, data.client_reference)
        if existing:
            return existing, False

    region = resolve_region(db, data.region_id)
    if data.request_mode == RequestMode.direct:
        _check_direct_target(db, data.target_driver_id)

    ride = RideSession(
        region_id=region.id,
        rider_user_id=identity.user_id,
        guest_identity_id=None if identity.user else identity.guest.id,
        origin_lat=data.origin.lat,
        origin_lng=data.origin.lng,
        origin_label=data.origin.label,
        destination_lat=data.destination.lat,
        destination_lng=data.destination.lng,
        destination_label=data.destination.label,
        destination_freeform_name=data.destination.freeform_name,
        fare_amount=data.fare_amount,
        pricing_rule_version_id=data.pricing_rule_version_id,
        pricing_metadata=data.pricing_metadata,
        request_mode=data.request_mode,
        target_driver_id=data.target_driver_id,
        status=RideStatus.created,
        client_reference=data.client_reference,
    )
    db.add(ride)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        if data.client_reference:
            existing = _find_by_client_reference(db, identity, data.client_reference)
            if existing:
                return existing, False
        raise
    if identity.user is None:
        _touch_unclaimed_guest(db, identity.guest)
    append_event(
        db,
        ride.id,
        EVENT_CREATED,
        actor_type=ACTOR_RIDER,
        actor_user_id=identity.user_id,
        data={
            "request_mode": data.request_mode,
            "origin": data.origin.label,
            "destination": data.destination.label,
            "fare_amount": data.fare_amount,
            "guest": identity.user is None,
            "client_reference": data.client_reference,
        },
    )
    db.commit()
    db.refresh(ride)
    log.info("[Rides] ride %s created (%s, fare=%.2f)", ride.id, data.request_mode.value, ride.fare_amount)
    return ride, True


def get_ride(db: Session, ride_session_id: int) -> RideSession:
    ride = db.query(RideSession).filter(RideSession.id == ride_session_id).first()
    if not ride:
        raise NotFound("Ride session not found")
    return ride


def get_ride_for_rider(db: Session, ride_session_id: int, identity: RiderIdentity) -> RideSession:
    ride = get_ride(db, ride_session_id)
    if not identity.owns(ride):
        raise Forbidden("Not your ride")
    return ride


def get_ride_for_selected_driver(db: Session, ride_session_id: int, driver: User) -> RideSession:
    ride = get_ride(db, ride_session_id)
    if ride.selected_driver_id != driver.id:
        raise Forbidden("Only the selected driver can do this")
    return ride


def list_rides_for_rider(db: Session, identity: RiderIdentity) -> list[RideSession]:
    return identity.owner_filter(db.query(RideSession)).order_by(RideSession.id.desc()).all()


def list_rides_for_driver(db: Session, driver: User) -> list[RideSession]:
    return (
        db.query(RideSession)
        .filter(RideSession.selected_driver_id == driver.id)
        .order_by(RideSession.id.desc())
        .all()
    )


def can_driver_view(db: Session, ride: RideSession, driver: User) -> bool:
    if driver.role != UserRole.driver:
        return False
    if ride.selected_driver_id == driver.id or ride.target_driver_id == driver.id:
        return True
    return driver.id in notifications.already_notified_driver_ids(db, ride.id)


def cancel_ride(db: Session, ride: RideSession, identity: RiderIdentity, reason: str | None = None) -> tuple[RideStatus, RideStatus]:
    """created | discovery | hold -> canceled. Rejects pending offers; notifies the selected driver."""
    now = utc_now()
    previous = transition(
        db,
        ride.id,
        RideStatus.canceled,
        event_type=EVENT_CANCELED,
        actor_type=ACTOR_RIDER,
        actor_user_id=identity.user_id,
        values={"cancel_reason": reason},
        event_data={"reason": reason},
    )
    (
        db.query(RideOffer)
        .filter(RideOffer.ride_session_id == ride.id, RideOffer.status == OfferStatus.pending)
        .update({"status": OfferStatus.rejected, "responded_at": now}, synchronize_session=False)
    )
    db.commit()
    db.refresh(ride)
    notifications.notify_ride_canceled(db, ride, ride.selected_driver_id, reason)
    log.info("[Rides] ride %s canceled from %s", ride.id, previous.value)
    return previous, RideStatus.canceled


def expire_ride(db: Session, ride: RideSession, reason: str = "timeout") -> RideStatus:
    """Any non-terminal status -> expired. Pending offers expire with the session."""
    now = utc_now()
    previous = transition(
        db,
        ride.id,
        RideStatus.expired,
        event_type=EVENT_EXPIRED,
        event_data={"reason": reason},
    )
    (
        db.query(RideOffer)
        .filter(RideOffer.ride_session_id == ride.id, RideOffer.status == OfferStatus.pending)
        .update({"status": OfferStatus.expired, "responded_at": now}, synchronize_session=False)
    )
    db.commit()
    return previous


def issue_verification(db: Session, ride: RideSession, identity: RiderIdentity) -> tuple[str, str, dict]:
    """Mint a pickup token for the ride. Returns (encoded_token, manual_code, payload).
    Re-issuing supersedes the previous token."""
    amount = ride.final_agreed_amount if ride.final_agreed_amount is not None else ride.fare_amount
    encoded, payload = vt.issue_token(ride.id, ride.origin_label, ride.destination_label, amount)
    rows = (
        db.query(RideSession)
        .filter(RideSession.id == ride.id, RideSession.status.in_(VERIFICATION_ISSUABLE_STATUSES))
        .update({"verification_token_jti": payload["jti"]}, synchronize_session=False)
    )
    if rows != 1:
        db.rollback()
        status = current_status(db, ride.id)
        raise StateConflict(
            f"A pickup code cannot be issued for this ride (current status: {status.value}).",
            current_status=status.value,
        )
    append_event(
        db,
        ride.id,
        EVENT_VERIFICATION_ISSUED,
        actor_type=ACTOR_RIDER,
        actor_user_id=identity.user_id,
        data={"jti": payload["jti"], "exp": payload["exp"]},
    )
    db.commit()
    db.refresh(ride)
    return encoded, vt.manual_code(ride.id), payload


def _reject_verification(db: Session, ride: RideSession, driver: User, kind: str, message: str, method: str):
    append_event(
        db,
        ride.id,
        EVENT_VERIFICATION_FAILED,
        actor_type=ACTOR_DRIVER,
        actor_user_id=driver.id,
        data={"failure_kind": kind, "method": method},
    )
    db.commit()
    raise VerificationFailed(kind, message)


def confirm_ride(
    db: Session,
    ride: RideSession,
    driver: User,
    *,
    encoded_token: str | None = None,
    manual_code: str | None = None,
) -> tuple[RideStatus, RideStatus]:
    """hold -> confirmed once the driver proves they met the rider (QR token or manual code)."""
    status = current_status(db, ride.id)
    if status != RideStatus.hold:
        raise StateConflict(
            f"Pickup can only be confirmed while the ride is on hold (current status: {status.value}).",
            current_status=status.value,
        )
    if encoded_token:
        method = "qr"
        payload, failure = vt.verify_token_with_error(encoded_token)
        if failure:
            messages = {
                vt.FAILURE_MALFORMED: "This code could not be read.",
                vt.FAILURE_TAMPERED: "This code is not valid. Ask the rider for the 6-digit code.",
                vt.FAILURE_EXPIRED: "This code has expired. Ask the rider for the 6-digit code.",
            }
            _reject_verification(db, ride, driver, failure, messages[failure], method)
        if payload["ride_session_id"] != ride.id:
            _reject_verification(db, ride, driver, "mismatch", "This code belongs to a different ride.", method)
        if payload["jti"] != ride.verification_token_jti:
            _reject_verification(db, ride, driver, "superseded", "This code was replaced by a newer one.", method)
    else:
        method = "manual_code"
        if not vt.verify_manual_code(ride.id, manual_code or ""):
            _reject_verification(db, ride, driver, "mismatch", "Incorrect code.", method)

    previous = transition(
        db,
        ride.id,
        RideStatus.confirmed,
        expected=RideStatus.hold,
        event_type=EVENT_CONFIRMED,
        actor_type=ACTOR_DRIVER,
        actor_user_id=driver.id,
        event_data={"method": method},
    )
    db.commit()
    db.refresh(ride)
    if ride.rider_user_id:
        notifications.notify_users(
            db,
            [ride.rider_user_id],
            notifications.TYPE_RIDE_CONFIRMED,
            "Pickup confirmed",
            f"Enjoy your ride to {ride.destination_label}.",
            ride_session_id=ride.id,
        )
    return previous, RideStatus.confirmed


def start_ride(db: Session, ride: RideSession, driver: User) -> tuple[RideStatus, RideStatus]:
    previous = transition(
        db,
        ride.id,
        RideStatus.active,
        event_type=EVENT_STARTED,
        actor_type=ACTOR_DRIVER,
        actor_user_id=driver.id,
    )
    db.commit()
    db.refresh(ride)
    return previous, RideStatus.active


def complete_ride(db: Session, ride: RideSession, driver: User) -> tuple[RideStatus, RideStatus]:
    """Only an active ride can complete; the state machine rejects every other status."""
    previous = transition(
        db,
        ride.id,
        RideStatus.completed,
        event_type=EVENT_COMPLETED,
        actor_type=ACTOR_DRIVER,
        actor_user_id=driver.id,
        event_data={"final_amount": ride.final_agreed_amount},
    )
    db.commit()
    db.refresh(ride)
    return previous, RideStatus.completed
