"""
Run the expiry sweep once (stale pending offers, and stale ride sessions when
RIDE_SESSION_EXPIRE_MINUTES > 0). Useful when the in-app scheduler is disabled.

Run from project root:
  python scripts/run_expiry_sweep.py
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import SessionLocal
from app.services.expiry import expire_stale_offers, expire_stale_sessions


def main():
    db = SessionLocal()
    try:
        offers = expire_stale_offers(db)
        sessions = expire_stale_sessions(db)
        print(f"Expired {offers} offer(s) and {sessions} ride session(s).")
    finally:
        db.close()


if __name__ == "__main__":
    main()
