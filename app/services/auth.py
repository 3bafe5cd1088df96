"""Rider and driver accounts: bcrypt passwords, HS256 access tokens, role checks."""
from datetime import timedelta

import bcrypt
import jwt
from sqlalchemy.orm import Session

from app.clock import utc_now
from app.config import get_settings
from app.errors import Forbidden
from app.models.user import User, UserRole

settings = get_settings()

_ROLE_REQUIRED = {
    UserRole.rider: "Rider role required",
    UserRole.driver: "Driver role required",
}


def _pwd_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:72]


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_pwd_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_pwd_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


def authenticate_user(db: Session, email: str, password: str, role: UserRole | None = None) -> User | None:
    """The account matching email and password. One email may hold a rider and a driver
    account; without a role the oldest account whose password matches wins."""
    q = db.query(User).filter(User.email == email)
    if role:
        q = q.filter(User.role == role)
    return next((u for u in q.order_by(User.id).all() if verify_password(password, u.hashed_password)), None)


def create_access_token(user: User) -> str:
    expire = utc_now() + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    # PyJWT expects "sub" to be a string
    payload = {"sub": str(user.id), "role": user.role.value, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token_with_error(token: str) -> tuple[dict | None, str | None]:
    """Decode JWT; returns (payload, error_message)."""
    token = (token or "").strip()
    if not token:
        return None, "empty token"
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]), None
    except jwt.PyJWTError as e:
        return None, str(e)


def user_id_from_token(token: str) -> int | None:
    payload, _ = decode_token_with_error(token)
    if not payload:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


def ensure_role(user: User, role: UserRole) -> User:
    if user.role != role:
        raise Forbidden(_ROLE_REQUIRED[role])
    return user
