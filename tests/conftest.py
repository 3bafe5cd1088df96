"""Shared fixtures: a throwaway SQLite database, a TestClient, and small factories."""
import os
import tempfile

_tmpdir = tempfile.mkdtemp(prefix="rora-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'rora_test.db')}"
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"
os.environ["PUSH_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["VERIFICATION_TOKEN_SECRET"] = "test-verification-secret"
os.environ["DEFAULT_COUNTRY_CODE"] = "SX"

import pytest
from fastapi.testclient import TestClient

from app.database import Base, SessionLocal, engine, get_db
import app.models  # noqa: F401
from app.main import app
from app.models.driver import DriverProfile, DriverFavorite
from app.models.region import Region, PricingZone
from app.models.user import User, UserRole
from app.schemas.ride import RideSessionCreate
from app.seed import seed_pricing
from app.services.auth import create_access_token
from app.services.guest_identity import issue_guest_identity
from app.services.rides import RiderIdentity, create_ride_session

# Zone centers from the seeded Sint Maarten configuration
AIRPORT = (18.0410, -63.1089)
PHILIPSBURG = (18.0237, -63.0458)
MAHO = (18.0390, -63.1190)
# Outside every seeded zone
HILLS_A = (18.0600, -63.0800)
HILLS_B = (18.0700, -63.0700)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    def override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def region(db) -> Region:
    seed_pricing(db)
    return db.query(Region).filter(Region.country_code == "SX").first()


@pytest.fixture
def zones(db, region) -> dict[str, PricingZone]:
    return {z.zone_code: z for z in db.query(PricingZone).filter(PricingZone.region_id == region.id).all()}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.rider, email: str | None = None, full_name: str = "Test User") -> User:
        counter["n"] += 1
        user = User(
            email=email or f"{role.value}{counter['n']}@rora.app",
            # Not a real bcrypt hash; these users authenticate with minted JWTs
            hashed_password="x",
            role=role,
            full_name=full_name,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_driver(db, make_user):
    def _make(accepting: bool = True, direct: bool = True, name: str = "Driver") -> User:
        user = make_user(UserRole.driver, full_name=name)
        db.add(DriverProfile(
            user_id=user.id,
            display_name=name,
            is_accepting_requests=accepting,
            allow_direct_requests=direct,
        ))
        db.commit()
        return user

    return _make


@pytest.fixture
def favorite(db):
    def _favorite(rider: User, driver: User) -> None:
        db.add(DriverFavorite(rider_user_id=rider.id, driver_user_id=driver.id))
        db.commit()

    return _favorite


@pytest.fixture
def guest(db):
    return issue_guest_identity(db)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def ride_payload(fare: float = 20.0, **overrides) -> dict:
    data = {
        "origin": {"lat": AIRPORT[0], "lng": AIRPORT[1], "label": "Airport"},
        "destination": {"lat": PHILIPSBURG[0], "lng": PHILIPSBURG[1], "label": "Philipsburg"},
        "fare_amount": fare,
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_ride(db, region):
    def _make(identity: RiderIdentity, fare: float = 20.0, **overrides):
        ride, _ = create_ride_session(db, RideSessionCreate(**ride_payload(fare, **overrides)), identity)
        return ride

    return _make
