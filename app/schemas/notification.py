"""Inbox notification schemas."""
from datetime import datetime
from typing import Any
from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    ride_session_id: int | None
    type: str
    title: str
    body: str
    meta: dict[str, Any] | None = None
    read_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
