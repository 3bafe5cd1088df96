"""Fare pricing engine: zone fixed fares first, distance fallback with time modifiers."""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

from app.clock import utc_now, ensure_utc
from app.config import get_settings
from app.errors import NotFound
from app.models.region import (
    Region,
    PricingZone,
    FixedFare,
    PricingRuleVersion,
    PricingModifier,
    ModifierType,
    ModifierApplication,
)
from app.schemas.pricing import FareResult
from app.services.geo import haversine_km, find_zone

log = logging.getLogger("uvicorn.error")

# Straight-line distance to estimated road distance
ROAD_DISTANCE_MULTIPLIER = 1.3

METHOD_ZONE_FIXED = "zone_fixed"
METHOD_DISTANCE_FALLBACK = "distance_fallback"
METHOD_OFFLINE_ESTIMATE = "offline_estimate"

_DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def round_money(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def resolve_region(db: Session, region_id: int | None = None) -> Region:
    """Active region by id, or the active region of the default country code."""
    q = db.query(Region).filter(Region.is_active.is_(True))
    if region_id is not None:
        region = q.filter(Region.id == region_id).first()
    else:
        code = get_settings().default_country_code.upper()
        region = q.filter(Region.country_code == code).order_by(Region.id).first()
    if not region:
        raise NotFound("Region not found")
    return region


def get_active_rule_version(db: Session, region_id: int) -> PricingRuleVersion:
    rule = (
        db.query(PricingRuleVersion)
        .filter(PricingRuleVersion.region_id == region_id, PricingRuleVersion.is_active.is_(True))
        .order_by(PricingRuleVersion.version_number.desc())
        .first()
    )
    if not rule:
        raise NotFound("No active pricing rule found for region")
    return rule


def _hour_in_range(hour: int, start: int, end: int) -> bool:
    if start > end:
        # Spans midnight (e.g. 22 -> 6)
        return hour >= start or hour < end
    return start <= hour < end


def modifier_matches(modifier: PricingModifier, now: datetime) -> bool:
    config = modifier.threshold_config or {}
    start = config.get("start_hour")
    end = config.get("end_hour")
    if start is None or end is None:
        return False
    hour = now.hour
    if modifier.modifier_type == ModifierType.night:
        return _hour_in_range(hour, int(start), int(end))
    if modifier.modifier_type == ModifierType.peak:
        days = [str(d).lower()[:3] for d in (config.get("days") or [])]
        if _DAY_NAMES[now.weekday()] not in days:
            return False
        # Peak windows never wrap midnight
        return int(start) <= hour < int(end)
    return False


def load_modifiers(db: Session, region_id: int) -> list[PricingModifier]:
    """Enabled modifiers in their declared application order."""
    return (
        db.query(PricingModifier)
        .filter(PricingModifier.region_id == region_id, PricingModifier.enabled.is_(True))
        .order_by(PricingModifier.priority, PricingModifier.id)
        .all()
    )


def apply_modifiers(subtotal: float, modifiers: list[PricingModifier], now: datetime) -> tuple[float, list[dict]]:
    total = subtotal
    applied = []
    for modifier in modifiers:
        if not modifier_matches(modifier, now):
            continue
        if modifier.modifier_application == ModifierApplication.multiply:
            total *= modifier.modifier_value
        elif modifier.modifier_application == ModifierApplication.add:
            total += modifier.modifier_value
        applied.append({
            "id": modifier.id,
            "type": modifier.modifier_type.value,
            "name": modifier.modifier_name,
            "value": modifier.modifier_value,
            "application": modifier.modifier_application.value,
            "running_total": total,
        })
    return total, applied


def _find_fixed_fare(db: Session, region_id: int, origin_zone_id: int | None, destination_zone_id: int | None) -> FixedFare | None:
    fares = (
        db.query(FixedFare)
        .filter(FixedFare.region_id == region_id, FixedFare.is_active.is_(True))
        .order_by(FixedFare.id)
        .all()
    )
    wanted = {(origin_zone_id, destination_zone_id), (destination_zone_id, origin_zone_id)}
    for fare in fares:
        if (fare.origin_zone_id, fare.destination_zone_id) in wanted:
            return fare
    return None


def compute_fare(
    db: Session,
    origin_lat: float,
    origin_lng: float,
    destination_lat: float,
    destination_lng: float,
    region_id: int | None = None,
    now: datetime | None = None,
) -> FareResult:
    """Quote a fare. Reads configuration only; never writes."""
    now = ensure_utc(now) if now else utc_now()
    region = resolve_region(db, region_id)

    zones = (
        db.query(PricingZone)
        .filter(PricingZone.region_id == region.id, PricingZone.is_active.is_(True))
        .order_by(PricingZone.id)
        .all()
    )
    origin_zone = find_zone(origin_lat, origin_lng, zones)
    destination_zone = find_zone(destination_lat, destination_lng, zones)

    if origin_zone or destination_zone:
        fixed = _find_fixed_fare(
            db,
            region.id,
            origin_zone.id if origin_zone else None,
            destination_zone.id if destination_zone else None,
        )
        if fixed:
            return FareResult(
                amount=round_money(fixed.amount),
                currency_code=region.currency_code,
                method=METHOD_ZONE_FIXED,
                region_id=region.id,
                pricing_rule_version_id=None,
                metadata={
                    "method": METHOD_ZONE_FIXED,
                    "origin_zone_id": origin_zone.id if origin_zone else None,
                    "origin_zone_name": origin_zone.zone_name if origin_zone else None,
                    "destination_zone_id": destination_zone.id if destination_zone else None,
                    "destination_zone_name": destination_zone.zone_name if destination_zone else None,
                    "fixed_fare_id": fixed.id,
                    "total": round_money(fixed.amount),
                    "calculated_at": now.isoformat(),
                },
            )

    rule = get_active_rule_version(db, region.id)
    straight_line_km = haversine_km(origin_lat, origin_lng, destination_lat, destination_lng)
    distance_km = straight_line_km * ROAD_DISTANCE_MULTIPLIER
    distance_fare = distance_km * rule.per_km_rate
    subtotal = rule.base_fare + distance_fare

    total, applied = apply_modifiers(subtotal, load_modifiers(db, region.id), now)
    amount = round_money(total)
    if applied:
        log.info("[Pricing] region=%s applied modifiers=%s", region.id, [m["name"] for m in applied])

    return FareResult(
        amount=amount,
        currency_code=region.currency_code,
        method=METHOD_DISTANCE_FALLBACK,
        region_id=region.id,
        pricing_rule_version_id=rule.id,
        metadata={
            "method": METHOD_DISTANCE_FALLBACK,
            "straight_line_km": straight_line_km,
            "multiplier": ROAD_DISTANCE_MULTIPLIER,
            "distance_km": distance_km,
            "base_fare": rule.base_fare,
            "per_km_rate": rule.per_km_rate,
            "distance_fare": distance_fare,
            "modifiers": applied,
            "subtotal": subtotal,
            "total": amount,
            "pricing_rule_version_id": rule.id,
            "calculated_at": now.isoformat(),
        },
    )


def offline_fare_estimate(origin_lat: float, origin_lng: float, destination_lat: float, destination_lng: float) -> float:
    """Rough estimate for clients that cannot reach a region's pricing rules. Never used as a quote."""
    settings = get_settings()
    distance_km = haversine_km(origin_lat, origin_lng, destination_lat, destination_lng) * ROAD_DISTANCE_MULTIPLIER
    return round_money(settings.offline_base_fare + distance_km * settings.offline_per_km_rate)
