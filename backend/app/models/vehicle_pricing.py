"""
Vehicle Pricing database model.

One row is the rate table for a (category, vehicle_type, vehicle_model,
trip_type) combination. Auto rows carry a flat fare; car and bus rows carry
a six-tier per-km table keyed "50km" .. "300km".
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, ForeignKey, Enum, JSON, Index, Text, text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.pricing_enums import VehicleCategory, TripType
from backend.app.domain.pricing.tiers import needs_backfill as table_needs_backfill


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


VehicleCategoryType = Enum(VehicleCategory, name="vehicle_category", values_callable=_enum_values)
TripTypeType = Enum(TripType, name="trip_type", values_callable=_enum_values)


class VehiclePricing(Base):
    """
    Vehicle Pricing model.
    
    Rows are never deleted; deactivated rows (is_active=False) are ignored by
    resolution. Only one active row may exist per key, enforced by the partial
    unique index below.
    """
    __tablename__ = "vehicle_pricing"
    __table_args__ = (
        Index(
            "uq_vehicle_pricing_active_key",
            "category", "vehicle_type", "vehicle_model", "trip_type",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Pricing key
    category = Column(VehicleCategoryType, nullable=False, index=True)
    vehicle_type = Column(String(100), nullable=False)  # e.g. "Sedan", "Mini Bus", "Auto"
    vehicle_model = Column(String(100), nullable=False)  # Model name, or fuel type for autos
    trip_type = Column(TripTypeType, nullable=False)
    
    # Rates
    auto_price = Column(Float, nullable=False, default=0)  # Flat fare (auto only)
    distance_pricing = Column(JSON, nullable=True)  # {"50km": rate, ... "300km": rate} (car/bus only)
    
    # Status
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    is_default = Column(Boolean, default=False, nullable=False)
    
    # Administrative metadata
    notes = Column(Text, nullable=True)
    created_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    updated_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    @property
    def is_tiered(self) -> bool:
        return self.category != VehicleCategory.AUTO
    
    @property
    def needs_backfill(self) -> bool:
        return self.is_tiered and table_needs_backfill(self.distance_pricing)
    
    def __repr__(self):
        return (
            f"<VehiclePricing(id={self.id}, {self.category.value}/{self.vehicle_type}/"
            f"{self.vehicle_model}, trip_type='{self.trip_type.value}', active={self.is_active})>"
        )
