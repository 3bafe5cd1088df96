"""Standalone script to create DB tables and seed the Sint Maarten pricing configuration."""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import engine, SessionLocal, Base
import app.models  # noqa: F401
from app.seed import seed_pricing

if __name__ == "__main__":
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_pricing(db)
        print("Pricing seeded: SX region, zones, fixed fares, rule version 1, night/peak modifiers.")
    finally:
        db.close()
