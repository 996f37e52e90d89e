"""
Vehicle Pricing Schemas.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Dict, List, Optional
from backend.app.models.pricing_enums import VehicleCategory, TripType


class DistancePricing(BaseModel):
    """Per-km rate for each distance tier."""
    tier_50km: float = Field(0, alias="50km")
    tier_100km: float = Field(0, alias="100km")
    tier_150km: float = Field(0, alias="150km")
    tier_200km: float = Field(0, alias="200km")
    tier_250km: float = Field(0, alias="250km")
    tier_300km: float = Field(0, alias="300km")

    model_config = ConfigDict(populate_by_name=True)


class PricingRecordCreate(BaseModel):
    """Schema for creating a pricing record. Rate rules are checked by the store."""
    category: VehicleCategory
    vehicle_type: str = Field(..., min_length=1, max_length=100)
    vehicle_model: str = Field(..., min_length=1, max_length=100)
    trip_type: TripType
    auto_price: Optional[float] = None
    distance_pricing: Optional[Dict[str, float]] = None
    is_active: bool = True
    is_default: bool = False
    notes: Optional[str] = None


class PricingRecordUpdate(BaseModel):
    """Rates and status only; the pricing key cannot change."""
    auto_price: Optional[float] = None
    distance_pricing: Optional[Dict[str, float]] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class PricingRecordResponse(BaseModel):
    id: int
    category: VehicleCategory
    vehicle_type: str
    vehicle_model: str
    trip_type: TripType
    auto_price: float
    distance_pricing: Optional[DistancePricing]
    is_active: bool
    is_default: bool
    notes: Optional[str]
    created_by_id: int
    updated_by_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PricingRecordListResponse(BaseModel):
    """Paginated pricing records."""
    records: List[PricingRecordResponse]
    total: int
    page: int
    page_size: int


class BulkPricingRequest(BaseModel):
    """Items use the same fields as PricingRecordCreate; each one is checked on its own."""
    pricing_data: List[Dict[str, Any]] = Field(..., min_length=1)


class BulkPricingItemResult(BaseModel):
    index: int
    action: str  # created, updated, error
    id: Optional[int] = None
    error: Optional[str] = None
    category: Optional[str] = None
    vehicle_type: Optional[str] = None
    vehicle_model: Optional[str] = None
    trip_type: Optional[str] = None


class BulkPricingResult(BaseModel):
    total: int
    created: int
    updated: int
    errors: int
    results: List[BulkPricingItemResult]


class BackfillResult(BaseModel):
    scanned: int
    backfilled: int


class FareRequest(BaseModel):
    """Fare for a known distance. Omit vehicle_model to price with the default."""
    category: VehicleCategory
    vehicle_type: str = Field(..., min_length=1)
    vehicle_model: Optional[str] = None
    trip_type: TripType = TripType.ONE_WAY
    distance_km: float = Field(..., ge=0)
    include_tax: bool = False


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class EstimateRequest(BaseModel):
    """Fare for a trip between two points; distance comes from the distance service."""
    category: VehicleCategory
    vehicle_type: str = Field(..., min_length=1)
    vehicle_model: Optional[str] = None
    trip_type: TripType = TripType.ONE_WAY
    origin: Location
    destination: Location
    include_tax: bool = False


class FareResponse(BaseModel):
    pricing_id: int
    category: VehicleCategory
    vehicle_type: str
    vehicle_model: str
    trip_type: TripType
    distance_km: float
    rate_per_km: float
    tier: Optional[str]
    base_fare: int
    tax: int
    total: int


class EstimateResponse(FareResponse):
    duration_minutes: int
    distance_source: str


class TierBand(BaseModel):
    key: str
    max_km: Optional[float]


class TierResponse(BaseModel):
    """Tier definitions, so client surfaces bucket distances the same way as the server."""
    tiers: List[TierBand]
    backfill_tiers: List[str]
    backfill_seed_tier: str
    tax_rate: float


class VehicleTypeSummary(BaseModel):
    vehicle_type: str
    models: List[str]


class CategorySummary(BaseModel):
    category: VehicleCategory
    types: List[VehicleTypeSummary]


class VehiclePricingResponse(BaseModel):
    """Resolved pricing for a vehicle plus the snapshot client surfaces quote from."""
    vehicle_id: int
    trip_type: TripType
    pricing: PricingRecordResponse
    snapshot: Dict[str, Any]
