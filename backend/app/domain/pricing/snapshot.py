"""
Vehicle pricing snapshot.

A denormalized copy of the resolved pricing for both trip types, stored on
the vehicle and served to the list, details and checkout screens so they can
show a price before the booking-time charge is computed. Quoting a snapshot
goes through the same calculate_fare() as the server, so a displayed fare and
the charged fare cannot drift apart.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from backend.app.models.pricing_enums import TripType, VehicleCategory
from backend.app.domain.pricing.fare_calculator import (
    DEFAULT_TAX_RATE,
    FareQuote,
    RateCard,
    has_rates,
    quote_fare,
)


@dataclass(frozen=True)
class VehiclePricingSnapshot:
    category: VehicleCategory
    vehicle_type: str
    vehicle_model: str
    auto_price: Dict[str, float] = field(default_factory=dict)
    distance_pricing: Dict[str, Dict[str, float]] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    @classmethod
    def empty(cls, category, vehicle_type: str, vehicle_model: str) -> "VehiclePricingSnapshot":
        return cls(category=VehicleCategory(category), vehicle_type=vehicle_type, vehicle_model=vehicle_model)

    @classmethod
    def for_vehicle(cls, vehicle: Any) -> "VehiclePricingSnapshot":
        """
        Snapshot stored on a vehicle.

        A snapshot taken for a different pricing reference than the vehicle
        now carries is discarded.
        """
        empty = cls.empty(vehicle.pricing_category, vehicle.pricing_vehicle_type, vehicle.pricing_vehicle_model)
        if not vehicle.pricing_snapshot:
            return empty
        snapshot = cls.from_payload(vehicle.pricing_snapshot)
        if (snapshot.category, snapshot.vehicle_type, snapshot.vehicle_model) != (
            empty.category, empty.vehicle_type, empty.vehicle_model
        ):
            return empty
        return snapshot

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "VehiclePricingSnapshot":
        updated_at = payload.get("updated_at")
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)
        return cls(
            category=VehicleCategory(payload["category"]),
            vehicle_type=payload["vehicle_type"],
            vehicle_model=payload["vehicle_model"],
            auto_price=dict(payload.get("auto_price") or {}),
            distance_pricing={
                trip: dict(table) for trip, table in (payload.get("distance_pricing") or {}).items() if table
            },
            updated_at=updated_at,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "vehicle_type": self.vehicle_type,
            "vehicle_model": self.vehicle_model,
            "auto_price": dict(self.auto_price),
            "distance_pricing": {trip: dict(table) for trip, table in self.distance_pricing.items()},
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def with_record(self, record: Any, updated_at: datetime) -> "VehiclePricingSnapshot":
        """Copy with one trip type's rates replaced by a resolved pricing row."""
        card = RateCard.from_record(record)
        trip = card.trip_type.value
        if card.category == VehicleCategory.AUTO:
            return replace(self, auto_price={**self.auto_price, trip: card.auto_price}, updated_at=updated_at)
        return replace(
            self,
            distance_pricing={**self.distance_pricing, trip: dict(card.distance_pricing or {})},
            updated_at=updated_at,
        )

    def without_trip(self, trip_type, updated_at: datetime) -> "VehiclePricingSnapshot":
        """Copy with one trip type's rates removed (its pricing no longer resolves)."""
        trip = TripType(trip_type).value
        return replace(
            self,
            auto_price={key: value for key, value in self.auto_price.items() if key != trip},
            distance_pricing={key: value for key, value in self.distance_pricing.items() if key != trip},
            updated_at=updated_at,
        )

    def same_rates(self, other: "VehiclePricingSnapshot") -> bool:
        return (
            self.category == other.category
            and self.vehicle_type == other.vehicle_type
            and self.vehicle_model == other.vehicle_model
            and self.auto_price == other.auto_price
            and self.distance_pricing == other.distance_pricing
        )

    def rate_card(self, trip_type) -> Optional[RateCard]:
        """
        Rate card for a trip type, or None when that trip type has no usable
        pricing. A return trip is priced only from return rates.
        """
        trip = TripType(trip_type)

        if self.category == VehicleCategory.AUTO:
            price = self.auto_price.get(trip.value)
            if not price:
                return None
            return RateCard(category=self.category, trip_type=trip, auto_price=price)

        card = RateCard(
            category=self.category,
            trip_type=trip,
            distance_pricing=dict(self.distance_pricing.get(trip.value) or {}),
        )
        return card if has_rates(card) else None

    def quote(
        self,
        distance_km: float,
        trip_type,
        include_tax: bool = False,
        tax_rate: float = DEFAULT_TAX_RATE,
    ) -> Optional[FareQuote]:
        card = self.rate_card(trip_type)
        if card is None:
            return None
        return quote_fare(card, distance_km, include_tax=include_tax, tax_rate=tax_rate)
