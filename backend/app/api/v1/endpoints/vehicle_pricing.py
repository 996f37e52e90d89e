"""
Vehicle Pricing API Endpoints.

Public pricing lookups and fare quotes used by the booking, list, details
and checkout surfaces.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, List, Optional

from backend.app.db.session import get_db
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    PricingUnavailableError,
    PricingValidationError,
    ResourceNotFoundError,
)
from backend.app.domain.pricing.fare_calculator import RateCard, has_rates, quote_fare
from backend.app.domain.pricing.pricing_resolver import PricingResolver
from backend.app.domain.pricing.pricing_store import PricingStore
from backend.app.domain.pricing.snapshot import VehiclePricingSnapshot
from backend.app.domain.pricing.tiers import BACKFILL_SEED_TIER, BACKFILL_TIERS, TIER_BOUNDS
from backend.app.models.pricing_enums import TripType, VehicleCategory
from backend.app.models.vehicle import Vehicle
from backend.app.schemas.vehicle_pricing import (
    CategorySummary,
    EstimateRequest,
    EstimateResponse,
    FareRequest,
    FareResponse,
    PricingRecordResponse,
    TierBand,
    TierResponse,
    VehiclePricingResponse,
)
from backend.app.services.distance_service import Coordinates, DistanceService, get_distance_service
from backend.app.services.pricing_cache import pricing_cache

router = APIRouter(prefix="/vehicle-pricing", tags=["Vehicle Pricing"])


async def resolve_pricing_payload(
    db: AsyncSession,
    category: VehicleCategory,
    vehicle_type: str,
    vehicle_model: Optional[str],
    trip_type: TripType,
) -> Dict[str, Any]:
    """
    Resolved pricing record as a response payload, read through the cache.

    Raises:
        PricingUnavailableError: nothing resolves, or the record has no usable rates
    """
    cache_key = (category.value, vehicle_type, vehicle_model, trip_type.value)
    generation = await pricing_cache.current_generation()
    if generation is not None:
        cached = await pricing_cache.get(*cache_key, generation=generation)
        if cached is not None:
            return cached

    record = await PricingResolver.resolve(db, category, vehicle_type, vehicle_model, trip_type)
    if record is None or not has_rates(record):
        raise PricingUnavailableError(details={
            "category": category.value,
            "vehicle_type": vehicle_type,
            "vehicle_model": vehicle_model,
            "trip_type": trip_type.value,
        })

    payload = PricingRecordResponse.model_validate(record).model_dump(mode="json", by_alias=True)
    if generation is not None:
        # Written under the generation read before resolving
        await pricing_cache.set(*cache_key, payload, generation=generation)
    return payload


def build_fare_response(payload: Dict[str, Any], distance_km: float, include_tax: bool) -> Dict[str, Any]:
    try:
        quote = quote_fare(
            RateCard.from_payload(payload),
            distance_km,
            include_tax=include_tax,
            tax_rate=settings.fare_tax_rate,
        )
    except ValueError as e:
        raise PricingValidationError(str(e))

    return {
        "pricing_id": payload["id"],
        "category": payload["category"],
        "vehicle_type": payload["vehicle_type"],
        "vehicle_model": payload["vehicle_model"],
        "trip_type": payload["trip_type"],
        "distance_km": quote.distance_km,
        "rate_per_km": quote.rate_per_km,
        "tier": quote.tier,
        "base_fare": quote.base_fare,
        "tax": quote.tax,
        "total": quote.total,
    }


@router.get("/tiers", response_model=TierResponse)
async def get_tiers():
    """Distance tier bands (right-inclusive upper bounds, last band open-ended)."""
    return TierResponse(
        tiers=[TierBand(key=key, max_km=upper_bound) for key, upper_bound in TIER_BOUNDS],
        backfill_tiers=list(BACKFILL_TIERS),
        backfill_seed_tier=BACKFILL_SEED_TIER,
        tax_rate=settings.fare_tax_rate,
    )


@router.get("/categories", response_model=List[CategorySummary])
async def list_categories(db: AsyncSession = Depends(get_db)):
    """Active pricing catalog grouped by category, vehicle type and model."""
    return await PricingStore.list_categories(db)


@router.get("/calculate", response_model=PricingRecordResponse)
async def get_pricing(
    category: VehicleCategory = Query(...),
    vehicle_type: str = Query(..., min_length=1),
    vehicle_model: Optional[str] = Query(None),
    trip_type: TripType = Query(TripType.ONE_WAY),
    db: AsyncSession = Depends(get_db)
):
    """
    Pricing record for a vehicle configuration.

    Omitting vehicle_model returns the default record for the vehicle type.
    """
    return await resolve_pricing_payload(db, category, vehicle_type, vehicle_model, trip_type)


@router.post("/calculate-fare", response_model=FareResponse)
async def calculate_fare(
    request: FareRequest,
    db: AsyncSession = Depends(get_db)
):
    """Fare for a known trip distance."""
    payload = await resolve_pricing_payload(
        db, request.category, request.vehicle_type, request.vehicle_model, request.trip_type
    )
    return build_fare_response(payload, request.distance_km, request.include_tax)


@router.post("/estimate", response_model=EstimateResponse)
async def estimate_fare(
    request: EstimateRequest,
    db: AsyncSession = Depends(get_db),
    distance_service: DistanceService = Depends(get_distance_service)
):
    """Fare between two points, with the distance looked up first."""
    payload = await resolve_pricing_payload(
        db, request.category, request.vehicle_type, request.vehicle_model, request.trip_type
    )
    distance = await distance_service.get_distance(
        Coordinates(request.origin.lat, request.origin.lng),
        Coordinates(request.destination.lat, request.destination.lng),
    )
    return {
        **build_fare_response(payload, distance.distance_km, request.include_tax),
        "duration_minutes": distance.duration_minutes,
        "distance_source": distance.source,
    }


@router.get("/vehicle/{vehicle_id}", response_model=VehiclePricingResponse)
async def get_vehicle_pricing(
    vehicle_id: int = Path(..., description="Vehicle ID"),
    trip_type: TripType = Query(TripType.ONE_WAY),
    db: AsyncSession = Depends(get_db)
):
    """
    Pricing for a specific vehicle.

    Also refreshes the vehicle's pricing snapshot, which is returned so the
    client can quote further distances without another round trip.
    """
    vehicle = await db.get(Vehicle, vehicle_id)
    if vehicle is None or not vehicle.is_active:
        raise ResourceNotFoundError("Vehicle", vehicle_id)

    record = await PricingResolver.resolve_for_vehicle(db, vehicle, trip_type)
    if record is None or not has_rates(record):
        raise PricingUnavailableError(details={"vehicle_id": vehicle_id, "trip_type": trip_type.value})

    return VehiclePricingResponse(
        vehicle_id=vehicle_id,
        trip_type=trip_type,
        pricing=PricingRecordResponse.model_validate(record),
        snapshot=VehiclePricingSnapshot.for_vehicle(vehicle).to_payload(),
    )
