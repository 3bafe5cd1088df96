"""Shared dependencies: DB session, current user, rider identity (user or guest)."""
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.database import get_db
from app.errors import NotAuthorized
from app.models.user import User, UserRole
from app.services.auth import ensure_role, user_id_from_token
from app.services.guest_identity import validate_guest_identity
from app.services.rides import RiderIdentity

security = HTTPBearer(auto_error=False)


def _user_from_credentials(db: Session, credentials: HTTPAuthorizationCredentials | None) -> User:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = user_id_from_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_current_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    return _user_from_credentials(db, credentials)


def get_optional_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User | None:
    """The signed-in user, or None when no bearer token was sent."""
    if not credentials:
        return None
    return _user_from_credentials(db, credentials)


def require_driver(current_user: User = Depends(get_current_user)) -> User:
    return ensure_role(current_user, UserRole.driver)


def require_rider(current_user: User = Depends(get_current_user)) -> User:
    return ensure_role(current_user, UserRole.rider)


def get_rider_identity(
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
    x_guest_token: str | None = Header(default=None),
) -> RiderIdentity:
    """A signed-in rider, or a guest identified by the X-Guest-Token header."""
    if user:
        return RiderIdentity(user=ensure_role(user, UserRole.rider))
    if x_guest_token:
        guest, reason = validate_guest_identity(db, x_guest_token)
        if not guest:
            raise NotAuthorized(f"Guest token invalid ({reason})")
        return RiderIdentity(guest=guest)
    raise NotAuthorized()


def get_ride_actor(
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
    x_guest_token: str | None = Header(default=None),
) -> RiderIdentity | User:
    """Drivers come back as their User; riders and guests as a RiderIdentity."""
    if user and user.role == UserRole.driver:
        return user
    return get_rider_identity(db, user, x_guest_token)
