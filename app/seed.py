"""Seed the Sint Maarten pricing configuration (region, zones, fixed fares, rules, modifiers)."""
from sqlalchemy.orm import Session
from app.clock import utc_now
from app.models.region import (
    Region,
    PricingZone,
    FixedFare,
    PricingRuleVersion,
    PricingModifier,
    ModifierType,
    ModifierApplication,
)


def seed_pricing(db: Session) -> None:
    if db.query(Region).count() > 0:
        return
    region = Region(
        country_code="SX",
        island_name="Sint Maarten",
        currency_code="USD",
        distance_unit="km",
        is_active=True,
    )
    db.add(region)
    db.flush()

    zones = {
        "SXM_AIRPORT": PricingZone(region_id=region.id, zone_code="SXM_AIRPORT", zone_name="Princess Juliana Airport",
                                   center_lat=18.0410, center_lng=-63.1089, radius_meters=800),
        "PHILIPSBURG": PricingZone(region_id=region.id, zone_code="PHILIPSBURG", zone_name="Philipsburg",
                                   center_lat=18.0237, center_lng=-63.0458, radius_meters=1200),
        "MAHO": PricingZone(region_id=region.id, zone_code="MAHO", zone_name="Maho Beach",
                            center_lat=18.0390, center_lng=-63.1190, radius_meters=500),
        "SIMPSON_BAY": PricingZone(region_id=region.id, zone_code="SIMPSON_BAY", zone_name="Simpson Bay",
                                   center_lat=18.0330, center_lng=-63.0920, radius_meters=1000),
        "GRAND_CASE": PricingZone(region_id=region.id, zone_code="GRAND_CASE", zone_name="Grand Case",
                                  center_lat=18.1020, center_lng=-63.0560, radius_meters=900),
    }
    for zone in zones.values():
        db.add(zone)
    db.flush()

    fares = [
        ("SXM_AIRPORT", "PHILIPSBURG", 25.0, "Airport - Philipsburg"),
        ("SXM_AIRPORT", "MAHO", 10.0, "Airport - Maho"),
        ("SXM_AIRPORT", "SIMPSON_BAY", 15.0, "Airport - Simpson Bay"),
        ("SXM_AIRPORT", "GRAND_CASE", 35.0, "Airport - Grand Case"),
        ("PHILIPSBURG", "GRAND_CASE", 30.0, "Philipsburg - Grand Case"),
    ]
    for origin, destination, amount, description in fares:
        db.add(FixedFare(
            region_id=region.id,
            origin_zone_id=zones[origin].id,
            destination_zone_id=zones[destination].id,
            amount=amount,
            description=description,
        ))

    rule = PricingRuleVersion(
        region_id=region.id,
        version_number=1,
        version_name="Launch rates",
        base_fare=5.0,
        per_km_rate=2.5,
        is_active=True,
        activated_at=utc_now(),
    )
    db.add(rule)
    db.flush()
    region.default_pricing_rule_version_id = rule.id

    db.add(PricingModifier(
        region_id=region.id,
        modifier_type=ModifierType.night,
        modifier_name="Night surcharge",
        modifier_application=ModifierApplication.multiply,
        modifier_value=1.25,
        threshold_config={"start_hour": 22, "end_hour": 6},
        priority=10,
    ))
    db.add(PricingModifier(
        region_id=region.id,
        modifier_type=ModifierType.peak,
        modifier_name="Cruise day peak",
        modifier_application=ModifierApplication.add,
        modifier_value=3.0,
        threshold_config={"start_hour": 7, "end_hour": 10, "days": ["mon", "tue", "wed", "thu", "fri"]},
        priority=20,
    ))
    db.commit()
