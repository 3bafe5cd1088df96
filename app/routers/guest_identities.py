"""Guest identities: ride without an account, migrate the rides on sign-in."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_rider
from app.models.user import User
from app.schemas.guest import GuestIdentityIssued, GuestTokenRequest, GuestValidationResponse, GuestMigrationResponse
from app.services.guest_identity import issue_guest_identity, validate_guest_identity, migrate_guest_identity

router = APIRouter(prefix="/guest-identities", tags=["guest-identities"])


@router.post("/", response_model=GuestIdentityIssued, status_code=201)
def issue(db: Session = Depends(get_db)):
    guest = issue_guest_identity(db)
    return GuestIdentityIssued(token=guest.token, expires_at=guest.expires_at)


@router.post("/validate", response_model=GuestValidationResponse)
def validate(data: GuestTokenRequest, db: Session = Depends(get_db)):
    guest, reason = validate_guest_identity(db, data.token)
    if not guest:
        return GuestValidationResponse(valid=False, error=reason)
    return GuestValidationResponse(valid=True, token_id=guest.id, expires_at=guest.expires_at)


@router.post("/migrate", response_model=GuestMigrationResponse)
def migrate(
    data: GuestTokenRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_rider),
):
    count = migrate_guest_identity(db, data.token, current_user.id)
    return GuestMigrationResponse(migrated_count=count)
