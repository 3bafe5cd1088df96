"""Error taxonomy of the ride core.

Each kind is an HTTPException so services raise them directly (as the routers do)
and FastAPI renders them with the right status code. Messages are meant for the
client, which may be acting on a stale view of the session.
"""
from fastapi import HTTPException


class ValidationFailed(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class NotAuthorized(HTTPException):
    def __init__(self, detail: str = "Authentication or guest token required"):
        super().__init__(status_code=401, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=403, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)


class StateConflict(HTTPException):
    def __init__(self, detail: str, current_status: str | None = None):
        super().__init__(status_code=409, detail=detail)
        self.current_status = current_status


class VerificationFailed(HTTPException):
    """Token or manual code rejected at confirmation. failure_kind: malformed | tampered | expired | superseded | mismatch."""

    def __init__(self, failure_kind: str, detail: str):
        super().__init__(status_code=422, detail={"failure_kind": failure_kind, "message": detail})
        self.failure_kind = failure_kind
