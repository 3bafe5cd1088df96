"""Discovery waves and the offer protocol on a ride session."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_rider_identity, get_ride_actor, require_driver
from app.models.user import User
from app.schemas.offer import OfferCreate, OfferResponse, SelectOfferResponse
from app.schemas.ride import StartDiscoveryRequest, StartDiscoveryResponse
from app.services import discovery
from app.services import rides as ride_service
from app.services.rides import RiderIdentity
from app.routers.rides import load_visible_ride

router = APIRouter(prefix="/rides", tags=["offers"])


@router.post("/{ride_session_id}/discovery", response_model=StartDiscoveryResponse)
def start_discovery(
    ride_session_id: int,
    data: StartDiscoveryRequest | None = None,
    db: Session = Depends(get_db),
    identity: RiderIdentity = Depends(get_rider_identity),
):
    ride = ride_service.get_ride_for_rider(db, ride_session_id, identity)
    wave = data.wave if data else 0
    notified = discovery.start_discovery(db, ride, wave, actor_user_id=identity.user_id)
    return StartDiscoveryResponse(ride_session_id=ride.id, wave=wave, notified_count=notified)


@router.post("/{ride_session_id}/discovery/expand", response_model=StartDiscoveryResponse)
def expand_discovery(
    ride_session_id: int,
    data: StartDiscoveryRequest | None = None,
    db: Session = Depends(get_db),
    identity: RiderIdentity = Depends(get_rider_identity),
):
    ride = ride_service.get_ride_for_rider(db, ride_session_id, identity)
    wave = data.wave if data and data.wave > 0 else 1
    notified = discovery.expand_discovery(db, ride, wave, actor_user_id=identity.user_id)
    return StartDiscoveryResponse(ride_session_id=ride.id, wave=wave, notified_count=notified)


@router.post("/{ride_session_id}/offers", response_model=OfferResponse, status_code=201)
def submit_offer(
    ride_session_id: int,
    data: OfferCreate,
    db: Session = Depends(get_db),
    driver: User = Depends(require_driver),
):
    return discovery.submit_offer(db, ride_session_id, driver, data.offer_type, data.amount, data.note)


@router.get("/{ride_session_id}/offers", response_model=list[OfferResponse])
def list_offers(
    ride_session_id: int,
    pending_only: bool = False,
    db: Session = Depends(get_db),
    actor: RiderIdentity | User = Depends(get_ride_actor),
):
    """Riders see every offer on their ride; drivers only their own."""
    ride = load_visible_ride(db, ride_session_id, actor)
    offers = discovery.list_offers(db, ride.id, pending_only=pending_only)
    if isinstance(actor, User):
        offers = [o for o in offers if o.driver_user_id == actor.id]
    return offers


@router.post("/{ride_session_id}/offers/{offer_id}/select", response_model=SelectOfferResponse)
def select_offer(
    ride_session_id: int,
    offer_id: int,
    db: Session = Depends(get_db),
    identity: RiderIdentity = Depends(get_rider_identity),
):
    ride = ride_service.get_ride_for_rider(db, ride_session_id, identity)
    offer = discovery.select_offer(db, ride, offer_id, actor_user_id=identity.user_id)
    return SelectOfferResponse(
        ride_session_id=ride.id,
        offer_id=offer.id,
        driver_user_id=offer.driver_user_id,
        final_amount=offer.offer_amount,
        new_status=ride.status.value,
    )
