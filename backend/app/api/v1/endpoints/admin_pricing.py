"""
Admin Vehicle Pricing API Endpoints.

Pricing record management. Every write is attributed to the calling admin
through created_by/updated_by.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backend.app.db.session import get_db
from backend.app.core.guards import require_admin
from backend.app.domain.pricing.pricing_store import PricingStore
from backend.app.models.pricing_enums import TripType, VehicleCategory
from backend.app.schemas.vehicle_pricing import (
    BackfillResult,
    BulkPricingRequest,
    BulkPricingResult,
    PricingRecordCreate,
    PricingRecordListResponse,
    PricingRecordResponse,
    PricingRecordUpdate,
)

router = APIRouter(prefix="/admin/vehicle-pricing", tags=["Admin - Vehicle Pricing"])


@router.get("", response_model=PricingRecordListResponse)
async def list_pricing(
    category: Optional[VehicleCategory] = Query(None),
    trip_type: Optional[TripType] = Query(None),
    vehicle_type: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List pricing records with filters and pagination.

    Records still on the three-tier table are backfilled as they are listed.
    """
    records, total = await PricingStore.list_records(
        db,
        category=category,
        trip_type=trip_type,
        vehicle_type=vehicle_type,
        include_inactive=include_inactive,
        page=page,
        page_size=page_size,
    )
    return PricingRecordListResponse(
        records=[PricingRecordResponse.model_validate(record) for record in records],
        total=total,
        page=page,
        page_size=page_size
    )


@router.post("", response_model=PricingRecordResponse, status_code=201)
async def create_pricing(
    payload: PricingRecordCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a pricing record. Returns 409 if an active record exists for the same key."""
    record = await PricingStore.create_record(db, payload.model_dump(mode="json"), current_user["user_id"])
    return PricingRecordResponse.model_validate(record)


@router.post("/bulk", response_model=BulkPricingResult)
async def bulk_upsert_pricing(
    payload: BulkPricingRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Create or update many records by key.

    Each item succeeds or fails on its own; failures are reported per item.
    """
    results = await PricingStore.bulk_upsert(db, payload.pricing_data, current_user["user_id"])
    return BulkPricingResult(
        total=len(results),
        created=sum(1 for r in results if r["action"] == "created"),
        updated=sum(1 for r in results if r["action"] == "updated"),
        errors=sum(1 for r in results if r["action"] == "error"),
        results=results
    )


@router.post("/backfill", response_model=BackfillResult)
async def backfill_pricing(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Add the 200/250/300km tiers to every record that lacks them."""
    return BackfillResult(**await PricingStore.backfill_all(db))


@router.get("/{pricing_id}", response_model=PricingRecordResponse)
async def get_pricing(
    pricing_id: int = Path(..., description="Pricing record ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    record = await PricingStore.get_record(db, pricing_id)
    await PricingStore.backfill_tiers(db, record)
    return PricingRecordResponse.model_validate(record)


@router.put("/{pricing_id}", response_model=PricingRecordResponse)
async def update_pricing(
    payload: PricingRecordUpdate,
    pricing_id: int = Path(..., description="Pricing record ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Update rates, notes or status. The pricing key is fixed once created."""
    record = await PricingStore.update_record(
        db, pricing_id, payload.model_dump(exclude_unset=True), current_user["user_id"]
    )
    return PricingRecordResponse.model_validate(record)


@router.delete("/{pricing_id}", response_model=PricingRecordResponse)
async def deactivate_pricing(
    pricing_id: int = Path(..., description="Pricing record ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Deactivate a record. It stays in the table but no longer resolves."""
    record = await PricingStore.soft_delete(db, pricing_id, current_user["user_id"])
    return PricingRecordResponse.model_validate(record)
