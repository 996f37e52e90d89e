"""
Fare calculation.

Turns a rate card (a persisted pricing row, or a snapshot of one) and a trip
distance into a whole-unit fare. Shared by the pricing API, the booking-time
charge and the vehicle snapshot served to clients, so all of them produce the
same number for the same inputs.

Policy:
- auto: the flat auto price, independent of distance
- car/bus: per-km rate of the distance tier x distance
- tax is never part of the base fare; callers opt in with apply_tax()
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from backend.app.models.pricing_enums import TripType, VehicleCategory
from backend.app.domain.pricing.tiers import describe_rate, round_half_up, select_rate

DEFAULT_TAX_RATE = 0.05


@dataclass(frozen=True)
class RateCard:
    """Plain-value view of one pricing row."""
    category: VehicleCategory
    trip_type: TripType
    auto_price: float = 0
    distance_pricing: Optional[Dict[str, float]] = field(default=None)

    @classmethod
    def from_record(cls, record: Any) -> "RateCard":
        return cls(
            category=VehicleCategory(record.category),
            trip_type=TripType(record.trip_type),
            auto_price=record.auto_price or 0,
            distance_pricing=dict(record.distance_pricing) if record.distance_pricing else None,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RateCard":
        return cls(
            category=VehicleCategory(payload["category"]),
            trip_type=TripType(payload["trip_type"]),
            auto_price=payload.get("auto_price") or 0,
            distance_pricing=dict(payload["distance_pricing"]) if payload.get("distance_pricing") else None,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "trip_type": self.trip_type.value,
            "auto_price": self.auto_price,
            "distance_pricing": dict(self.distance_pricing) if self.distance_pricing else None,
        }


@dataclass(frozen=True)
class FareQuote:
    distance_km: float
    base_fare: int
    tax: int
    total: int
    rate_per_km: float
    tier: Optional[str]


def has_rates(record: Any) -> bool:
    """Whether a rate card can price a trip at all (non-zero auto price or at least one tier rate)."""
    if VehicleCategory(record.category) == VehicleCategory.AUTO:
        return (record.auto_price or 0) > 0
    return any(rate for rate in (record.distance_pricing or {}).values())


def calculate_fare(record: Any, distance_km: float, trip_type: Optional[str] = None) -> int:
    """
    Base fare for a trip, rounded to whole currency units.

    Args:
        record: VehiclePricing row or RateCard
        distance_km: Trip distance, must be >= 0
        trip_type: Optional guard; must match the record's trip type

    Raises:
        ValueError: negative distance or a rate card for the other trip type
    """
    if distance_km < 0:
        raise ValueError("Distance cannot be negative")
    if trip_type is not None and TripType(trip_type) != TripType(record.trip_type):
        raise ValueError(
            f"Rate card is for {TripType(record.trip_type).value} trips, not {TripType(trip_type).value}"
        )

    if VehicleCategory(record.category) == VehicleCategory.AUTO:
        return round_half_up(record.auto_price or 0)

    rate = select_rate(distance_km, record.distance_pricing)
    return round_half_up(rate * distance_km)


def apply_tax(base_fare: int, rate: float = DEFAULT_TAX_RATE) -> Dict[str, int]:
    """Add the display/receipt surcharge on top of a base fare."""
    tax = round_half_up(base_fare * rate)
    return {"base_fare": base_fare, "tax": tax, "total": base_fare + tax}


def quote_fare(
    record: Any,
    distance_km: float,
    trip_type: Optional[str] = None,
    include_tax: bool = False,
    tax_rate: float = DEFAULT_TAX_RATE,
) -> FareQuote:
    """Fare plus the rate and tier it was computed from."""
    base_fare = calculate_fare(record, distance_km, trip_type)
    if VehicleCategory(record.category) == VehicleCategory.AUTO:
        rate, tier = 0, "fixed"
    else:
        rate, tier = describe_rate(distance_km, record.distance_pricing)
    tax = apply_tax(base_fare, tax_rate)["tax"] if include_tax else 0
    return FareQuote(
        distance_km=distance_km,
        base_fare=base_fare,
        tax=tax,
        total=base_fare + tax,
        rate_per_km=rate,
        tier=tier,
    )
