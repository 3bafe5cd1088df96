"""
Create a test rider and a test driver (with driver profile) for local testing.

Run from project root:
  python scripts/create_test_users.py

Credentials are printed at the end.
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import SessionLocal
from app.models.driver import DriverProfile
from app.models.user import User, UserRole
from app.services.auth import get_password_hash

RIDER_EMAIL = "rider@rora.demo"
RIDER_PASSWORD = "Password123!"
RIDER_FULL_NAME = "Test Rider"

DRIVER_EMAIL = "driver@rora.demo"
DRIVER_PASSWORD = "Password123!"
DRIVER_FULL_NAME = "Test Driver"


def _get_or_create(db, email: str, password: str, full_name: str, role: UserRole) -> User:
    user = db.query(User).filter(User.email == email, User.role == role).first()
    if user:
        print(f"{role.value.capitalize()} already exists: {email}")
        return user
    user = User(email=email, hashed_password=get_password_hash(password), role=role, full_name=full_name)
    db.add(user)
    db.flush()
    print(f"Created {role.value}: {email}")
    return user


def main():
    db = SessionLocal()
    try:
        _get_or_create(db, RIDER_EMAIL, RIDER_PASSWORD, RIDER_FULL_NAME, UserRole.rider)
        driver = _get_or_create(db, DRIVER_EMAIL, DRIVER_PASSWORD, DRIVER_FULL_NAME, UserRole.driver)
        if not db.query(DriverProfile).filter(DriverProfile.user_id == driver.id).first():
            db.add(DriverProfile(user_id=driver.id, display_name=DRIVER_FULL_NAME, vehicle_type="sedan"))
        db.commit()
    finally:
        db.close()

    print()
    print("Rider:  ", RIDER_EMAIL, "/", RIDER_PASSWORD)
    print("Driver: ", DRIVER_EMAIL, "/", DRIVER_PASSWORD)


if __name__ == "__main__":
    main()
