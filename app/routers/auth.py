"""Authentication: riders and drivers register and log in; leftover guest rides move on request."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from app.database import get_db
from app.dependencies import get_current_user
from app.models.driver import DriverProfile
from app.models.user import User, UserRole
from app.schemas.auth import UserCreate, UserLogin, Token, UserResponse
from app.services.auth import get_password_hash, authenticate_user, create_access_token
from app.services.guest_identity import migrate_guest_identity

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/auth", tags=["auth"])


def _register_email_taken_message(existing_role: UserRole) -> str:
    if existing_role == UserRole.driver:
        return "This email is already registered as a driver. Please log in on the Driver Login page."
    return "This email is already registered as a rider. Please log in instead."


def _token_with_migration(db: Session, user: User, guest_token: str | None) -> Token:
    """Issue the access token; when a guest token was sent, migrate its rides to the user."""
    token = Token(
        access_token=create_access_token(user),
        user=UserResponse.model_validate(user),
    )
    if not guest_token:
        return token
    if user.role != UserRole.rider:
        token.migration_error = "Only rider accounts can take over guest rides."
        return token
    try:
        token.migrated_rides = migrate_guest_identity(db, guest_token, user.id)
    except HTTPException as e:
        token.migrated_rides = 0
        token.migration_error = str(e.detail)
    return token


@router.post("/register", response_model=Token)
def register(data: UserCreate, db: Session = Depends(get_db)):
    # Same email can hold a rider and a driver account (unique on email+role)
    existing = db.query(User).filter(User.email == data.email, User.role == data.role).first()
    if existing:
        raise HTTPException(status_code=400, detail=_register_email_taken_message(existing.role))

    user = User(
        email=data.email,
        hashed_password=get_password_hash(data.password),
        role=data.role,
        full_name=data.full_name.strip() or None,
        phone=data.phone or None,
    )
    db.add(user)
    try:
        db.flush()
        if data.role == UserRole.driver:
            db.add(DriverProfile(
                user_id=user.id,
                display_name=(data.display_name or data.full_name).strip(),
                phone_number=data.phone or None,
            ))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=_register_email_taken_message(data.role))
    db.refresh(user)
    log.info("[Auth] registered %s user %s", user.role.value, user.id)
    return _token_with_migration(db, user, data.guest_token)


@router.post("/login", response_model=Token)
def login(data: UserLogin, db: Session = Depends(get_db)):
    user = authenticate_user(db, data.email, data.password, data.role)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return _token_with_migration(db, user, data.guest_token)


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
