"""Guest identity schemas."""
from datetime import datetime
from pydantic import BaseModel, Field


class GuestIdentityIssued(BaseModel):
    token: str
    expires_at: datetime


class GuestTokenRequest(BaseModel):
    token: str = Field(min_length=1)


class GuestValidationResponse(BaseModel):
    valid: bool
    token_id: int | None = None
    expires_at: datetime | None = None
    error: str | None = None  # not_found | expired | claimed


class GuestMigrationResponse(BaseModel):
    migrated_count: int
