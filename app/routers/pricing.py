"""Fare quotes and region pricing configuration."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import NotFound
from app.models.region import Region, PricingZone, FixedFare, PricingRuleVersion
from app.schemas.pricing import FareRequest, FareResult, FareEstimateResponse
from app.schemas.region import RegionResponse, RegionPricingResponse
from app.services.pricing import compute_fare, offline_fare_estimate, load_modifiers

router = APIRouter(tags=["pricing"])


@router.post("/fares/compute", response_model=FareResult)
def compute(data: FareRequest, db: Session = Depends(get_db)):
    return compute_fare(
        db,
        data.origin.lat,
        data.origin.lng,
        data.destination.lat,
        data.destination.lng,
        region_id=data.region_id,
    )


@router.post("/fares/estimate", response_model=FareEstimateResponse)
def estimate(data: FareRequest):
    """Offline-style estimate; needs no region configuration."""
    amount = offline_fare_estimate(data.origin.lat, data.origin.lng, data.destination.lat, data.destination.lng)
    return FareEstimateResponse(amount=amount)


@router.get("/regions/", response_model=list[RegionResponse])
def list_regions(db: Session = Depends(get_db)):
    return db.query(Region).filter(Region.is_active.is_(True)).order_by(Region.id).all()


@router.get("/regions/{region_id}/pricing", response_model=RegionPricingResponse)
def region_pricing(region_id: int, db: Session = Depends(get_db)):
    region = db.query(Region).filter(Region.id == region_id).first()
    if not region:
        raise NotFound("Region not found")
    rule = (
        db.query(PricingRuleVersion)
        .filter(PricingRuleVersion.region_id == region.id, PricingRuleVersion.is_active.is_(True))
        .order_by(PricingRuleVersion.version_number.desc())
        .first()
    )
    zones = (
        db.query(PricingZone)
        .filter(PricingZone.region_id == region.id, PricingZone.is_active.is_(True))
        .order_by(PricingZone.id)
        .all()
    )
    fixed_fares = (
        db.query(FixedFare)
        .filter(FixedFare.region_id == region.id, FixedFare.is_active.is_(True))
        .order_by(FixedFare.id)
        .all()
    )
    return RegionPricingResponse(
        region=RegionResponse.model_validate(region),
        active_rule_version=rule,
        zones=zones,
        fixed_fares=fixed_fares,
        modifiers=load_modifiers(db, region.id),
    )
