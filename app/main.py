"""Rora ride core – FastAPI application."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.config import get_settings
from app.database import Base, engine
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from app.models import (  # noqa: F401
    User, DriverProfile, DriverFavorite, Device, Region, PricingZone, FixedFare,
    PricingRuleVersion, PricingModifier, GuestIdentity, RideSession, RideOffer,
    RideEvent, Notification,
)
from app.routers import auth, pricing, guest_identities, rides, offers, verification, drivers, notifications

log = logging.getLogger("uvicorn.error")

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(pricing.router)
app.include_router(guest_identities.router)
app.include_router(rides.router)
app.include_router(offers.router)
app.include_router(verification.router)
app.include_router(drivers.router)
app.include_router(notifications.router)


@app.exception_handler(OperationalError)
def store_unavailable(request: Request, exc: OperationalError):
    log.warning("[DB] store unavailable on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable. Please retry."},
        headers={"Retry-After": "2"},
    )


@app.on_event("startup")
def startup():
    try:
        Base.metadata.create_all(bind=engine)
        from app.database import SessionLocal
        from app.seed import seed_pricing
        db = SessionLocal()
        try:
            seed_pricing(db)
        finally:
            db.close()
    except Exception as e:
        log.warning("Database startup failed (tables/seed skipped). Check DATABASE_URL and network. Error: %s", e)

    if not settings.push_enabled:
        log.info("[Push] Not configured - drivers get inbox notifications only; set PUSH_ENABLED=true to send pushes")

    if settings.expiry_sweep_enabled:
        try:
            from apscheduler.schedulers.background import BackgroundScheduler
            from app.services.expiry import run_expiry_sweep_job
            scheduler = BackgroundScheduler()
            scheduler.add_job(
                run_expiry_sweep_job,
                "interval",
                minutes=settings.expiry_sweep_interval_minutes,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            app.state.scheduler = scheduler
        except Exception:
            log.exception("[Expiry] scheduler failed to start")


@app.on_event("shutdown")
def shutdown():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler:
        scheduler.shutdown(wait=False)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
