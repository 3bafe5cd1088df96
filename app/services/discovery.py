"""Discovery and offer protocol: wave fan-out, offer intake, exclusive selection."""
import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from app.clock import utc_now
from app.config import get_settings
from app.errors import Forbidden, NotFound, StateConflict
from app.models.driver import DriverProfile, DriverFavorite
from app.models.ride_offer import RideOffer, OfferType, OfferStatus, PriceLabel
from app.models.ride_session import RideSession, RideStatus, RequestMode
from app.models.user import User
from app.services import notifications
from app.services.ride_events import (
    append_event,
    ACTOR_DRIVER,
    ACTOR_RIDER,
    EVENT_DISCOVERY_STARTED,
    EVENT_DISCOVERY_EXPANDED,
    EVENT_OFFER_SUBMITTED,
    EVENT_OFFER_SELECTED,
)
from app.services.ride_state import current_status, transition

log = logging.getLogger("uvicorn.error")

GOOD_DEAL_MAX_PERCENT = Decimal("-20")
PRICIER_MIN_PERCENT = Decimal("30")


class FavoritesFirstPolicy:
    """Default wave policy.

    direct requests: only the target driver (if it accepts direct requests).
    wave 0: the rider's favorite drivers; the general pool when there are none.
    wave 1+: every driver accepting requests.
    """

    def driver_pool(self, db: Session, ride: RideSession, wave: int) -> list[int]:
        accepting = db.query(DriverProfile.user_id).filter(DriverProfile.is_accepting_requests.is_(True))
        if ride.request_mode == RequestMode.direct:
            rows = accepting.filter(
                DriverProfile.user_id == ride.target_driver_id,
                DriverProfile.allow_direct_requests.is_(True),
            ).all()
            return [r.user_id for r in rows]
        if wave == 0 and ride.rider_user_id:
            favorite_ids = db.query(DriverFavorite.driver_user_id).filter(
                DriverFavorite.rider_user_id == ride.rider_user_id
            )
            favorites = accepting.filter(DriverProfile.user_id.in_(favorite_ids)).order_by(DriverProfile.user_id).all()
            if favorites:
                return [r.user_id for r in favorites]
        return [r.user_id for r in accepting.order_by(DriverProfile.user_id).all()]


default_wave_policy = FavoritesFirstPolicy()


def price_label_for(amount: float, fare: float) -> PriceLabel:
    """good_deal at 20%+ below the quoted fare, pricier at 30%+ above, normal otherwise."""
    if not fare:
        return PriceLabel.normal
    percent = (Decimal(str(amount)) - Decimal(str(fare))) / Decimal(str(fare)) * 100
    if percent <= GOOD_DEAL_MAX_PERCENT:
        return PriceLabel.good_deal
    if percent >= PRICIER_MIN_PERCENT:
        return PriceLabel.pricier
    return PriceLabel.normal


def _get_ride(db: Session, ride_session_id: int) -> RideSession:
    ride = db.query(RideSession).filter(RideSession.id == ride_session_id).first()
    if not ride:
        raise NotFound("Ride session not found")
    return ride


def start_discovery(
    db: Session,
    ride: RideSession,
    wave: int = 0,
    *,
    actor_user_id: int | None = None,
    actor_type: str = ACTOR_RIDER,
    policy=None,
) -> int:
    """created -> discovery, then notify the wave's driver pool. Returns the notified count."""
    policy = policy or default_wave_policy
    pool = policy.driver_pool(db, ride, wave)
    transition(
        db,
        ride.id,
        RideStatus.discovery,
        expected=RideStatus.created,
        event_type=EVENT_DISCOVERY_STARTED,
        actor_type=actor_type,
        actor_user_id=actor_user_id,
        event_data={"wave": wave, "driver_pool": pool},
    )
    db.commit()
    db.refresh(ride)
    notified = notifications.notify_ride_request(db, ride, pool, wave)
    log.info("[Discovery] ride %s wave %s: pool=%d notified=%d", ride.id, wave, len(pool), notified)
    return notified


def expand_discovery(
    db: Session,
    ride: RideSession,
    wave: int,
    *,
    actor_user_id: int | None = None,
    actor_type: str = ACTOR_RIDER,
    policy=None,
) -> int:
    """Notify the next wave of a ride already in discovery, skipping drivers notified before."""
    policy = policy or default_wave_policy
    status = current_status(db, ride.id)
    if status != RideStatus.discovery:
        raise StateConflict(
            f"Discovery can only be expanded while searching for drivers (current status: {status.value}).",
            current_status=status.value,
        )
    seen = notifications.already_notified_driver_ids(db, ride.id)
    pool = [d for d in policy.driver_pool(db, ride, wave) if d not in seen]
    append_event(
        db,
        ride.id,
        EVENT_DISCOVERY_EXPANDED,
        actor_type=actor_type,
        actor_user_id=actor_user_id,
        data={"wave": wave, "driver_pool": pool},
    )
    db.commit()
    notified = notifications.notify_ride_request(db, ride, pool, wave)
    log.info("[Discovery] ride %s expanded to wave %s: notified=%d", ride.id, wave, notified)
    return notified


def _ensure_still_in_discovery(db: Session, ride_session_id: int) -> None:
    """Conditional touch of the session row. Serializes with a concurrent selection."""
    rows = (
        db.query(RideSession)
        .filter(RideSession.id == ride_session_id, RideSession.status == RideStatus.discovery)
        .update({"updated_at": utc_now()}, synchronize_session=False)
    )
    if rows != 1:
        db.rollback()
        raise StateConflict("This ride is no longer accepting offers.")


def submit_offer(
    db: Session,
    ride_session_id: int,
    driver: User,
    offer_type: OfferType,
    amount: float | None = None,
    note: str | None = None,
) -> RideOffer:
    ride = _get_ride(db, ride_session_id)
    status = current_status(db, ride.id)
    if status != RideStatus.discovery:
        raise StateConflict(
            f"This ride is no longer accepting offers (current status: {status.value}).",
            current_status=status.value,
        )
    if ride.request_mode == RequestMode.direct and ride.target_driver_id != driver.id:
        raise Forbidden("This ride was requested directly from another driver.")
    existing = (
        db.query(RideOffer)
        .filter(
            RideOffer.ride_session_id == ride.id,
            RideOffer.driver_user_id == driver.id,
            RideOffer.status == OfferStatus.pending,
        )
        .first()
    )
    if existing:
        raise StateConflict("You already have a pending offer on this ride.")

    offer_amount = ride.fare_amount if offer_type == OfferType.accept else float(amount)
    label = price_label_for(offer_amount, ride.fare_amount)
    now = utc_now()
    offer = RideOffer(
        ride_session_id=ride.id,
        driver_user_id=driver.id,
        offer_type=offer_type,
        offer_amount=offer_amount,
        price_label=label,
        note=note,
        status=OfferStatus.pending,
        expires_at=now + timedelta(minutes=get_settings().offer_expire_minutes),
    )
    db.add(offer)
    db.flush()
    _ensure_still_in_discovery(db, ride.id)
    append_event(
        db,
        ride.id,
        EVENT_OFFER_SUBMITTED,
        actor_type=ACTOR_DRIVER,
        actor_user_id=driver.id,
        data={"offer_id": offer.id, "offer_type": offer_type, "amount": offer_amount, "price_label": label},
    )
    db.commit()
    db.refresh(offer)
    notifications.notify_offer_received(db, ride, offer_amount, label.value)
    return offer


def select_offer(
    db: Session,
    ride: RideSession,
    offer_id: int,
    *,
    actor_user_id: int | None = None,
    actor_type: str = ACTOR_RIDER,
) -> RideOffer:
    """Accept one pending offer and reject the rest; the session moves discovery -> hold.

    Exactly one winner: the session UPDATE only matches while status is still
    'discovery' and the offer UPDATE only while the offer is still pending and
    unexpired. Losing either race rolls the whole selection back.
    """
    offer = (
        db.query(RideOffer)
        .filter(RideOffer.id == offer_id, RideOffer.ride_session_id == ride.id)
        .first()
    )
    if not offer:
        raise NotFound("Offer not found")
    if offer.status != OfferStatus.pending:
        raise StateConflict("Offer no longer available.", current_status=offer.status.value)

    now = utc_now()
    transition(
        db,
        ride.id,
        RideStatus.hold,
        expected=RideStatus.discovery,
        event_type=EVENT_OFFER_SELECTED,
        actor_type=actor_type,
        actor_user_id=actor_user_id,
        values={
            "selected_offer_id": offer.id,
            "selected_driver_id": offer.driver_user_id,
            "final_agreed_amount": offer.offer_amount,
        },
        event_data={"offer_id": offer.id, "driver_user_id": offer.driver_user_id, "amount": offer.offer_amount},
    )
    accepted = (
        db.query(RideOffer)
        .filter(
            RideOffer.id == offer.id,
            RideOffer.status == OfferStatus.pending,
            RideOffer.expires_at > now,
        )
        .update({"status": OfferStatus.accepted, "responded_at": now}, synchronize_session=False)
    )
    if accepted != 1:
        db.rollback()
        raise StateConflict("Offer no longer available.")

    rejected_driver_ids = [
        r.driver_user_id
        for r in db.query(RideOffer.driver_user_id).filter(
            RideOffer.ride_session_id == ride.id,
            RideOffer.status == OfferStatus.pending,
            RideOffer.id != offer.id,
        ).all()
    ]
    (
        db.query(RideOffer)
        .filter(
            RideOffer.ride_session_id == ride.id,
            RideOffer.status == OfferStatus.pending,
            RideOffer.id != offer.id,
        )
        .update({"status": OfferStatus.rejected, "responded_at": now}, synchronize_session=False)
    )
    db.commit()
    db.refresh(ride)
    db.refresh(offer)
    notifications.notify_offer_results(db, ride, offer.driver_user_id, rejected_driver_ids)
    log.info("[Discovery] ride %s: offer %s accepted, %d rejected", ride.id, offer.id, len(rejected_driver_ids))
    return offer


def list_offers(db: Session, ride_session_id: int, pending_only: bool = False) -> list[RideOffer]:
    q = db.query(RideOffer).filter(RideOffer.ride_session_id == ride_session_id)
    if pending_only:
        q = q.filter(RideOffer.status == OfferStatus.pending, RideOffer.expires_at > utc_now())
    return q.order_by(RideOffer.offer_amount, RideOffer.created_at).all()
