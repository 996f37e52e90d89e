"""
Vehicle database model.

The vehicle directory is owned elsewhere; this backend reads a vehicle's
pricing reference and writes back a denormalized pricing snapshot that
client surfaces use to display fares before booking.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.vehicle_pricing import VehicleCategoryType


class Vehicle(Base):
    __tablename__ = "vehicles"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Vehicle identification
    registration_number = Column(String(50), unique=True, nullable=False, index=True)
    brand = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    
    # Pricing reference - looked up in vehicle_pricing
    pricing_category = Column(VehicleCategoryType, nullable=False)
    pricing_vehicle_type = Column(String(100), nullable=False)
    pricing_vehicle_model = Column(String(100), nullable=False)
    
    # Denormalized copy of resolved pricing (see domain.pricing.snapshot)
    pricing_snapshot = Column(JSON, nullable=True)
    pricing_updated_at = Column(DateTime(timezone=True), nullable=True)
    
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    @property
    def pricing_reference(self) -> dict:
        return {
            "category": self.pricing_category,
            "vehicle_type": self.pricing_vehicle_type,
            "vehicle_model": self.pricing_vehicle_model,
        }
    
    def __repr__(self):
        return f"<Vehicle(id={self.id}, number='{self.registration_number}', model='{self.pricing_vehicle_model}')>"
