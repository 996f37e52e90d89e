"""
Vehicle pricing store tests.

Create/update/deactivate rules, duplicate detection, tier backfill and
bulk upsert.
"""

import pytest
from backend.app.core.exceptions import (
    DuplicatePricingError,
    PricingValidationError,
    ResourceNotFoundError,
)
from backend.app.domain.pricing.pricing_store import PricingStore
from backend.app.models.pricing_enums import TripType, VehicleCategory
from backend.app.models.vehicle_pricing import VehiclePricing

CAR_TABLE = {"50km": 12, "100km": 10, "150km": 8, "200km": 7, "250km": 6, "300km": 5}


def car_fields(**overrides):
    fields = {
        "category": "car",
        "vehicle_type": "Sedan",
        "vehicle_model": "Dzire",
        "trip_type": "one-way",
        "distance_pricing": dict(CAR_TABLE),
    }
    fields.update(overrides)
    return fields


async def test_create_car_record(db_session, admin_user):
    record = await PricingStore.create_record(db_session, car_fields(notes="launch rates"), admin_user.id)

    assert record.id is not None
    assert record.category == VehicleCategory.CAR
    assert record.trip_type == TripType.ONE_WAY
    assert record.distance_pricing == CAR_TABLE
    assert record.auto_price == 0
    assert record.created_by_id == admin_user.id
    assert record.is_active


async def test_create_auto_record(db_session, admin_user):
    record = await PricingStore.create_record(db_session, {
        "category": "auto",
        "vehicle_type": "Auto",
        "vehicle_model": "CNG",
        "trip_type": "one-way",
        "auto_price": 200,
        "distance_pricing": dict(CAR_TABLE),
    }, admin_user.id)

    assert record.auto_price == 200
    assert record.distance_pricing is None


async def test_duplicate_active_key_rejected(db_session, admin_user):
    await PricingStore.create_record(db_session, car_fields(), admin_user.id)

    with pytest.raises(DuplicatePricingError) as exc_info:
        await PricingStore.create_record(db_session, car_fields(), admin_user.id)

    assert exc_info.value.status_code == 409


async def test_same_key_other_trip_type_allowed(db_session, admin_user):
    await PricingStore.create_record(db_session, car_fields(), admin_user.id)
    record = await PricingStore.create_record(db_session, car_fields(trip_type="return"), admin_user.id)
    assert record.trip_type == TripType.RETURN


async def test_key_reusable_after_deactivation(db_session, admin_user):
    first = await PricingStore.create_record(db_session, car_fields(), admin_user.id)
    await PricingStore.soft_delete(db_session, first.id, admin_user.id)

    second = await PricingStore.create_record(db_session, car_fields(), admin_user.id)
    assert second.id != first.id


@pytest.mark.parametrize("fields", [
    car_fields(category="truck"),
    car_fields(trip_type="round"),
    car_fields(vehicle_type="  "),
    car_fields(distance_pricing=None),
    car_fields(distance_pricing={"50km": 12, "100km": 10, "150km": 8}),
    car_fields(distance_pricing={**CAR_TABLE, "400km": 4}),
    car_fields(distance_pricing={**CAR_TABLE, "50km": -1}),
    car_fields(category="auto", auto_price=0),
    car_fields(category="auto", auto_price=None),
    car_fields(category="auto", auto_price=float("inf")),
    car_fields(category="auto", auto_price=float("nan")),
    car_fields(distance_pricing={**CAR_TABLE, "100km": float("inf")}),
    car_fields(distance_pricing={**CAR_TABLE, "150km": float("nan")}),
])
async def test_invalid_records_rejected(db_session, admin_user, fields):
    with pytest.raises(PricingValidationError):
        await PricingStore.create_record(db_session, fields, admin_user.id)


async def test_update_rates(db_session, admin_user):
    record = await PricingStore.create_record(db_session, car_fields(), admin_user.id)

    updated = await PricingStore.update_record(
        db_session, record.id, {"distance_pricing": {**CAR_TABLE, "100km": 11}, "notes": "festival"}, admin_user.id
    )

    assert updated.distance_pricing["100km"] == 11
    assert updated.notes == "festival"
    assert updated.updated_by_id == admin_user.id


async def test_update_rejects_key_fields(db_session, admin_user):
    record = await PricingStore.create_record(db_session, car_fields(), admin_user.id)

    with pytest.raises(PricingValidationError):
        await PricingStore.update_record(db_session, record.id, {"vehicle_model": "Ciaz"}, admin_user.id)


async def test_update_validates_merged_record(db_session, admin_user):
    record = await PricingStore.create_record(db_session, car_fields(), admin_user.id)

    with pytest.raises(PricingValidationError):
        await PricingStore.update_record(
            db_session, record.id, {"distance_pricing": {"50km": 12}}, admin_user.id
        )


async def test_update_missing_record(db_session, admin_user):
    with pytest.raises(ResourceNotFoundError):
        await PricingStore.update_record(db_session, 999, {"notes": "x"}, admin_user.id)


async def test_setting_default_clears_previous_default(db_session, admin_user):
    first = await PricingStore.create_record(db_session, car_fields(is_default=True), admin_user.id)
    second = await PricingStore.create_record(
        db_session, car_fields(vehicle_model="Ciaz", is_default=True), admin_user.id
    )

    await db_session.refresh(first)
    assert not first.is_default
    assert second.is_default
    found = await PricingStore.find_default(db_session, VehicleCategory.CAR, "Sedan", TripType.ONE_WAY)
    assert found.id == second.id


async def test_soft_delete_keeps_row(db_session, admin_user):
    record = await PricingStore.create_record(db_session, car_fields(), admin_user.id)

    deleted = await PricingStore.soft_delete(db_session, record.id, admin_user.id)

    assert not deleted.is_active
    assert await PricingStore.find_active(
        db_session, VehicleCategory.CAR, "Sedan", "Dzire", TripType.ONE_WAY
    ) is None
    assert (await PricingStore.get_record(db_session, record.id)).id == record.id


async def _legacy_record(db_session, admin_user, **overrides):
    # Three-tier tables predate validation, so they are inserted directly
    fields = dict(
        category=VehicleCategory.CAR,
        vehicle_type="Sedan",
        vehicle_model="Etios",
        trip_type=TripType.ONE_WAY,
        distance_pricing={"50km": 12, "100km": 10, "150km": 8},
        created_by_id=admin_user.id,
    )
    fields.update(overrides)
    record = VehiclePricing(**fields)
    db_session.add(record)
    await db_session.commit()
    await db_session.refresh(record)
    return record


async def test_backfill_seeds_new_tiers(db_session, admin_user):
    record = await _legacy_record(db_session, admin_user)

    await PricingStore.backfill_tiers(db_session, record)

    assert record.distance_pricing["200km"] == 8
    assert record.distance_pricing["250km"] == 8
    assert record.distance_pricing["300km"] == 8
    reloaded = await PricingStore.get_record(db_session, record.id)
    await db_session.refresh(reloaded)
    assert reloaded.distance_pricing["300km"] == 8


async def test_backfill_twice_is_stable(db_session, admin_user):
    record = await _legacy_record(db_session, admin_user)

    await PricingStore.backfill_tiers(db_session, record)
    once = dict(record.distance_pricing)
    await PricingStore.backfill_tiers(db_session, record)

    assert record.distance_pricing == once


async def test_backfill_all(db_session, admin_user):
    await _legacy_record(db_session, admin_user)
    await _legacy_record(db_session, admin_user, vehicle_model="Indica", is_active=False)
    await PricingStore.create_record(db_session, car_fields(), admin_user.id)

    result = await PricingStore.backfill_all(db_session)

    assert result == {"scanned": 3, "backfilled": 2}
    assert await PricingStore.backfill_all(db_session) == {"scanned": 3, "backfilled": 0}


async def test_list_records_backfills_and_paginates(db_session, admin_user):
    await _legacy_record(db_session, admin_user)
    await PricingStore.create_record(db_session, car_fields(), admin_user.id)
    await PricingStore.create_record(db_session, car_fields(category="bus", vehicle_type="Mini Bus"), admin_user.id)

    records, total = await PricingStore.list_records(db_session, category=VehicleCategory.CAR)
    assert total == 2
    assert all(len(record.distance_pricing) == 6 for record in records)

    page, total = await PricingStore.list_records(db_session, page=2, page_size=2)
    assert total == 3
    assert len(page) == 1


async def test_list_categories(db_session, admin_user):
    await PricingStore.create_record(db_session, car_fields(), admin_user.id)
    await PricingStore.create_record(db_session, car_fields(trip_type="return"), admin_user.id)
    await PricingStore.create_record(db_session, car_fields(vehicle_model="Ciaz"), admin_user.id)

    categories = await PricingStore.list_categories(db_session)

    assert categories == [
        {"category": "car", "types": [{"vehicle_type": "Sedan", "models": ["Ciaz", "Dzire"]}]}
    ]


async def test_bulk_upsert_reports_each_item(db_session, admin_user):
    await PricingStore.create_record(db_session, car_fields(), admin_user.id)

    results = await PricingStore.bulk_upsert(db_session, [
        car_fields(distance_pricing={**CAR_TABLE, "50km": 13}),
        car_fields(vehicle_model="Ciaz"),
        car_fields(vehicle_model="Broken", distance_pricing={"50km": 1}),
        {"category": "auto", "vehicle_type": "Auto", "vehicle_model": "CNG", "trip_type": "one-way", "auto_price": 180},
    ], admin_user.id)

    assert [r["action"] for r in results] == ["updated", "created", "error", "created"]
    assert results[2]["error"].startswith("Distance pricing is required")

    updated = await PricingStore.find_active(db_session, VehicleCategory.CAR, "Sedan", "Dzire", TripType.ONE_WAY)
    await db_session.refresh(updated)
    assert updated.distance_pricing["50km"] == 13
