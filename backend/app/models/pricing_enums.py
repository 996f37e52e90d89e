"""
Pricing enumerations.
"""

import enum


class VehicleCategory(str, enum.Enum):
    """Vehicle category; determines the pricing shape."""
    AUTO = "auto"  # Flat fare per trip
    CAR = "car"  # Per-km rate from the distance tiers
    BUS = "bus"  # Per-km rate from the distance tiers


class TripType(str, enum.Enum):
    """Trip type enumeration."""
    ONE_WAY = "one-way"
    RETURN = "return"

    @classmethod
    def from_round_trip(cls, is_round_trip: bool) -> "TripType":
        return cls.RETURN if is_round_trip else cls.ONE_WAY
