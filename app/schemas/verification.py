"""Verification token (QR) and manual code schemas."""
from pydantic import BaseModel, Field, model_validator


class VerificationTokenIssued(BaseModel):
    ride_session_id: int
    encoded_token: str
    manual_code: str
    jti: str
    expires_at: int  # unix seconds


class VerifyTokenRequest(BaseModel):
    encoded_token: str


class VerificationPayload(BaseModel):
    jti: str
    ride_session_id: int
    origin_label: str
    destination_label: str
    fare_amount: float
    iat: int
    exp: int


class VerifyTokenResponse(BaseModel):
    valid: bool
    payload: VerificationPayload | None = None
    failure_kind: str | None = None  # malformed | tampered | expired
    # True when the manual code may be offered instead (tamper or expiry, never malformed input)
    manual_code_fallback: bool = False


class ConfirmRideRequest(BaseModel):
    encoded_token: str | None = None
    manual_code: str | None = Field(default=None, pattern=r"^\d{6}$")

    @model_validator(mode="after")
    def exactly_one(self):
        if bool(self.encoded_token) == bool(self.manual_code):
            raise ValueError("Provide exactly one of encoded_token or manual_code")
        return self
