"""Auth schemas."""
import re
from pydantic import BaseModel, EmailStr, model_validator, field_validator
from app.models.user import UserRole

PHONE_MIN_DIGITS = 7
PHONE_MAX_DIGITS = 15
PASSWORD_MIN_LENGTH = 8


def _normalize_phone(value: str | None) -> str:
    if value is None:
        return ""
    return re.sub(r"\D", "", value.strip())


class UserCreate(BaseModel):
    full_name: str
    email: EmailStr
    phone: str = ""
    password: str
    confirm_password: str = ""
    role: UserRole = UserRole.rider
    # Drivers only; defaults to full_name
    display_name: str | None = None
    # Leftover guest token whose rides should move to the new account
    guest_token: str | None = None

    @field_validator("phone")
    @classmethod
    def phone_valid(cls, v: str) -> str:
        digits = _normalize_phone(v)
        if digits and not (PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS):
            raise ValueError(f"Phone number must have {PHONE_MIN_DIGITS}-{PHONE_MAX_DIGITS} digits.")
        return (v or "").strip()

    @model_validator(mode="after")
    def passwords_match(self):
        if len(self.password) < PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
        if self.confirm_password and self.confirm_password != self.password:
            raise ValueError("Passwords do not match")
        return self


class UserLogin(BaseModel):
    email: EmailStr
    password: str
    role: UserRole | None = None
    guest_token: str | None = None


class UserResponse(BaseModel):
    id: int
    email: str
    role: UserRole
    full_name: str | None = None
    phone: str | None = None

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
    # Set when a guest_token was sent: number of rides moved, or why nothing moved
    migrated_rides: int | None = None
    migration_error: str | None = None
