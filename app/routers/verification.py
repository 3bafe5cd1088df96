"""Pickup verification: drivers check a scanned QR token before confirming."""
from fastapi import APIRouter, Depends

from app.dependencies import require_driver
from app.models.user import User
from app.schemas.verification import VerifyTokenRequest, VerifyTokenResponse, VerificationPayload
from app.services.verification_token import verify_token_with_error, MANUAL_CODE_FALLBACK_KINDS

router = APIRouter(prefix="/verification", tags=["verification"])


@router.post("/verify", response_model=VerifyTokenResponse)
def verify(data: VerifyTokenRequest, driver: User = Depends(require_driver)):
    payload, failure = verify_token_with_error(data.encoded_token)
    if failure:
        return VerifyTokenResponse(
            valid=False,
            failure_kind=failure,
            manual_code_fallback=failure in MANUAL_CODE_FALLBACK_KINDS,
        )
    return VerifyTokenResponse(valid=True, payload=VerificationPayload(**payload))
