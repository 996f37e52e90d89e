"""
Fare calculation tests.
"""

import pytest
from backend.app.domain.pricing.fare_calculator import (
    RateCard,
    apply_tax,
    calculate_fare,
    has_rates,
    quote_fare,
)
from backend.app.models.pricing_enums import TripType, VehicleCategory

CAR_TABLE = {"50km": 12, "100km": 10, "150km": 8, "200km": 7, "250km": 6, "300km": 5}


@pytest.fixture
def car_card():
    return RateCard(category=VehicleCategory.CAR, trip_type=TripType.ONE_WAY, distance_pricing=CAR_TABLE)


@pytest.fixture
def auto_card():
    return RateCard(category=VehicleCategory.AUTO, trip_type=TripType.ONE_WAY, auto_price=200)


def test_car_fare_uses_distance_tier(car_card):
    quote = quote_fare(car_card, 80)
    assert quote.tier == "100km"
    assert quote.rate_per_km == 10
    assert quote.base_fare == 800
    assert calculate_fare(car_card, 80, "one-way") == 800


def test_long_trip_uses_open_ended_tier(car_card):
    quote = quote_fare(car_card, 260)
    assert quote.tier == "300km"
    assert quote.rate_per_km == 5
    assert quote.base_fare == 1300


@pytest.mark.parametrize("distance", [0, 3.2, 80, 500])
def test_auto_fare_is_flat(auto_card, distance):
    assert calculate_fare(auto_card, distance) == 200
    assert quote_fare(auto_card, distance).tier == "fixed"


def test_fare_rounds_half_up(car_card):
    # 10.125km at 12/km = 121.5
    assert calculate_fare(car_card, 10.125) == 122


def test_fare_is_deterministic(car_card):
    assert calculate_fare(car_card, 137.4) == calculate_fare(car_card, 137.4)


def test_negative_distance_rejected(car_card):
    with pytest.raises(ValueError):
        calculate_fare(car_card, -1)


def test_trip_type_mismatch_rejected(car_card):
    with pytest.raises(ValueError):
        calculate_fare(car_card, 80, TripType.RETURN)


def test_tax_is_opt_in(car_card):
    assert quote_fare(car_card, 80).total == 800
    taxed = quote_fare(car_card, 80, include_tax=True, tax_rate=0.05)
    assert (taxed.base_fare, taxed.tax, taxed.total) == (800, 40, 840)


def test_apply_tax_rounds_tax():
    assert apply_tax(215, 0.05) == {"base_fare": 215, "tax": 11, "total": 226}


def test_has_rates():
    assert not has_rates(RateCard(category=VehicleCategory.CAR, trip_type=TripType.ONE_WAY))
    assert not has_rates(RateCard(category=VehicleCategory.CAR, trip_type=TripType.ONE_WAY,
                                  distance_pricing={key: 0 for key in CAR_TABLE}))
    assert not has_rates(RateCard(category=VehicleCategory.AUTO, trip_type=TripType.ONE_WAY, auto_price=0))
    assert has_rates(RateCard(category=VehicleCategory.BUS, trip_type=TripType.RETURN,
                              distance_pricing={"50km": 25}))


def test_rate_card_payload_round_trip(car_card):
    assert RateCard.from_payload(car_card.to_payload()) == car_card
