"""Driver profiles, rider favorites and push device registration."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.clock import utc_now
from app.database import get_db
from app.dependencies import get_current_user, require_driver, require_rider
from app.errors import NotFound
from app.models.driver import DriverProfile, DriverFavorite, Device
from app.models.user import User
from app.schemas.driver import DriverProfileUpdate, DriverProfileResponse, DeviceRegister

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.put("/profile", response_model=DriverProfileResponse)
def update_profile(
    data: DriverProfileUpdate,
    db: Session = Depends(get_db),
    driver: User = Depends(require_driver),
):
    profile = db.query(DriverProfile).filter(DriverProfile.user_id == driver.id).first()
    if not profile:
        profile = DriverProfile(user_id=driver.id, display_name=data.display_name)
        db.add(profile)
    for field, value in data.model_dump().items():
        setattr(profile, field, value)
    db.commit()
    db.refresh(profile)
    return profile


@router.get("/", response_model=list[DriverProfileResponse])
def list_drivers(
    favorites_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Drivers currently accepting requests (optionally just the caller's favorites)."""
    q = db.query(DriverProfile).filter(DriverProfile.is_accepting_requests.is_(True))
    if favorites_only:
        favorite_ids = db.query(DriverFavorite.driver_user_id).filter(DriverFavorite.rider_user_id == current_user.id)
        q = q.filter(DriverProfile.user_id.in_(favorite_ids))
    return q.order_by(DriverProfile.display_name, DriverProfile.id).all()


@router.post("/{driver_user_id}/favorite", status_code=201)
def add_favorite(
    driver_user_id: int,
    db: Session = Depends(get_db),
    rider: User = Depends(require_rider),
):
    if not db.query(DriverProfile).filter(DriverProfile.user_id == driver_user_id).first():
        raise NotFound("Driver not found")
    existing = (
        db.query(DriverFavorite)
        .filter(DriverFavorite.rider_user_id == rider.id, DriverFavorite.driver_user_id == driver_user_id)
        .first()
    )
    if not existing:
        db.add(DriverFavorite(rider_user_id=rider.id, driver_user_id=driver_user_id))
        db.commit()
    return {"status": "ok", "driver_user_id": driver_user_id}


@router.delete("/{driver_user_id}/favorite")
def remove_favorite(
    driver_user_id: int,
    db: Session = Depends(get_db),
    rider: User = Depends(require_rider),
):
    deleted = (
        db.query(DriverFavorite)
        .filter(DriverFavorite.rider_user_id == rider.id, DriverFavorite.driver_user_id == driver_user_id)
        .delete()
    )
    db.commit()
    if not deleted:
        raise NotFound("Favorite not found")
    return {"status": "ok", "driver_user_id": driver_user_id}


@router.post("/devices", status_code=201)
def register_device(
    data: DeviceRegister,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Register (or move) a push token to the calling user."""
    device = db.query(Device).filter(Device.push_token == data.push_token).first()
    if not device:
        device = Device(push_token=data.push_token)
        db.add(device)
    device.user_id = current_user.id
    device.platform = data.platform
    device.device_name = data.device_name
    device.app_version = data.app_version
    device.is_active = True
    device.last_used_at = utc_now()
    db.commit()
    db.refresh(device)
    return {"status": "ok", "device_id": device.id}
