"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from app.models.user import User
from app.models.driver import DriverProfile, DriverFavorite, Device
from app.models.region import Region, PricingZone, FixedFare, PricingRuleVersion, PricingModifier
from app.models.guest_identity import GuestIdentity
from app.models.ride_session import RideSession
from app.models.ride_offer import RideOffer
from app.models.ride_event import RideEvent
from app.models.notification import Notification

__all__ = [
    "User",
    "DriverProfile",
    "DriverFavorite",
    "Device",
    "Region",
    "PricingZone",
    "FixedFare",
    "PricingRuleVersion",
    "PricingModifier",
    "GuestIdentity",
    "RideSession",
    "RideOffer",
    "RideEvent",
    "Notification",
]
