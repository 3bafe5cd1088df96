"""Ride sessions: creation, read models, cancel, pickup verification and ride progress."""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_rider_identity, get_ride_actor, require_driver
from app.errors import Forbidden
from app.models.ride_session import RideSession
from app.models.user import User
from app.schemas.ride import (
    RideSessionCreate,
    RideSessionResponse,
    RideEventResponse,
    CancelRideRequest,
    TransitionResponse,
)
from app.schemas.verification import VerificationTokenIssued, ConfirmRideRequest
from app.services import rides as ride_service
from app.services.ride_events import list_events
from app.services.rides import RiderIdentity

router = APIRouter(prefix="/rides", tags=["rides"])


def load_visible_ride(db: Session, ride_session_id: int, actor: RiderIdentity | User) -> RideSession:
    """The ride if the caller owns it, or is a driver who was asked, targeted or selected."""
    if isinstance(actor, RiderIdentity):
        return ride_service.get_ride_for_rider(db, ride_session_id, actor)
    ride = ride_service.get_ride(db, ride_session_id)
    if not ride_service.can_driver_view(db, ride, actor):
        raise Forbidden("Not your ride")
    return ride


@router.post("/", response_model=RideSessionResponse, status_code=201)
def create_ride(
    data: RideSessionCreate,
    response: Response,
    db: Session = Depends(get_db),
    identity: RiderIdentity = Depends(get_rider_identity),
):
    ride, created = ride_service.create_ride_session(db, data, identity)
    if not created:
        # Replayed offline request: the existing session
        response.status_code = 200
    return ride


@router.get("/", response_model=list[RideSessionResponse])
def list_rides(
    db: Session = Depends(get_db),
    actor: RiderIdentity | User = Depends(get_ride_actor),
):
    if isinstance(actor, RiderIdentity):
        return ride_service.list_rides_for_rider(db, actor)
    return ride_service.list_rides_for_driver(db, actor)


@router.get("/{ride_session_id}", response_model=RideSessionResponse)
def get_ride(
    ride_session_id: int,
    db: Session = Depends(get_db),
    actor: RiderIdentity | User = Depends(get_ride_actor),
):
    return load_visible_ride(db, ride_session_id, actor)


@router.get("/{ride_session_id}/events", response_model=list[RideEventResponse])
def get_ride_events(
    ride_session_id: int,
    db: Session = Depends(get_db),
    actor: RiderIdentity | User = Depends(get_ride_actor),
):
    ride = load_visible_ride(db, ride_session_id, actor)
    return list_events(db, ride.id)


@router.post("/{ride_session_id}/cancel", response_model=TransitionResponse)
def cancel(
    ride_session_id: int,
    data: CancelRideRequest | None = None,
    db: Session = Depends(get_db),
    identity: RiderIdentity = Depends(get_rider_identity),
):
    ride = ride_service.get_ride_for_rider(db, ride_session_id, identity)
    previous, new = ride_service.cancel_ride(db, ride, identity, reason=data.reason if data else None)
    return TransitionResponse(ride_session_id=ride.id, previous_status=previous, new_status=new)


@router.post("/{ride_session_id}/verification-token", response_model=VerificationTokenIssued)
def issue_verification_token(
    ride_session_id: int,
    db: Session = Depends(get_db),
    identity: RiderIdentity = Depends(get_rider_identity),
):
    ride = ride_service.get_ride_for_rider(db, ride_session_id, identity)
    encoded, code, payload = ride_service.issue_verification(db, ride, identity)
    return VerificationTokenIssued(
        ride_session_id=ride.id,
        encoded_token=encoded,
        manual_code=code,
        jti=payload["jti"],
        expires_at=payload["exp"],
    )


@router.post("/{ride_session_id}/confirm", response_model=TransitionResponse)
def confirm(
    ride_session_id: int,
    data: ConfirmRideRequest,
    db: Session = Depends(get_db),
    driver: User = Depends(require_driver),
):
    ride = ride_service.get_ride_for_selected_driver(db, ride_session_id, driver)
    previous, new = ride_service.confirm_ride(
        db, ride, driver, encoded_token=data.encoded_token, manual_code=data.manual_code
    )
    return TransitionResponse(ride_session_id=ride.id, previous_status=previous, new_status=new)


@router.post("/{ride_session_id}/start", response_model=TransitionResponse)
def start(
    ride_session_id: int,
    db: Session = Depends(get_db),
    driver: User = Depends(require_driver),
):
    ride = ride_service.get_ride_for_selected_driver(db, ride_session_id, driver)
    previous, new = ride_service.start_ride(db, ride, driver)
    return TransitionResponse(ride_session_id=ride.id, previous_status=previous, new_status=new)


@router.post("/{ride_session_id}/complete", response_model=TransitionResponse)
def complete(
    ride_session_id: int,
    db: Session = Depends(get_db),
    driver: User = Depends(require_driver),
):
    ride = ride_service.get_ride_for_selected_driver(db, ride_session_id, driver)
    previous, new = ride_service.complete_ride(db, ride, driver)
    return TransitionResponse(ride_session_id=ride.id, previous_status=previous, new_status=new)
