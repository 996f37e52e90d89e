"""
Failure Injection Tests.

Validates resilience against distance upstream and storage failures.
"""

import httpx
import pytest
from sqlalchemy.exc import OperationalError
import backend.app.core.redis_client as redis_client_module
from backend.app.core.exceptions import DistanceUnavailableError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError
from backend.app.domain.pricing.pricing_store import PricingStore
from backend.app.models.pricing_enums import TripType, VehicleCategory
from backend.app.models.vehicle_pricing import VehiclePricing
from backend.app.services.distance_service import (
    Coordinates,
    DistanceService,
    haversine_distance,
)
from backend.app.services.pricing_cache import pricing_cache

@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=1)

    async def failing_func():
        raise ValueError("Boom")

    # Fail 1
    with pytest.raises(ValueError):
        await cb.call(failing_func)

    # Fail 2 (Threshold reached)
    with pytest.raises(ValueError):
        await cb.call(failing_func)

    # Call 3 (Should be CircuitOpenError)
    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)

@pytest.mark.asyncio
async def test_circuit_breaker_closes_after_successful_trial_call(monkeypatch):
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=0)

    async def failing_func():
        raise ValueError("Boom")

    async def ok_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    monkeypatch.setattr("backend.app.core.reliability.time.time", lambda: cb.last_failure_time + 1)
    assert await cb.call(ok_func) == "ok"
    assert cb.state == "CLOSED"

def test_haversine_distance():
    assert haversine_distance(0, 0, 0, 1) == 111.19
    assert haversine_distance(22.7196, 75.8577, 22.7196, 75.8577) == 0

@pytest.mark.asyncio
async def test_distance_without_api_key_uses_haversine():
    service = DistanceService(api_key=None)

    result = await service.get_distance(Coordinates(0, 0), Coordinates(0, 1))

    assert result.distance_km == 111.19
    assert result.source == "haversine"
    assert result.duration_minutes == 222

@pytest.mark.asyncio
async def test_distance_upstream_failure_falls_back(monkeypatch):
    service = DistanceService(api_key="test-key")

    async def unreachable(origin, destination):
        raise httpx.ConnectError("maps unreachable")

    monkeypatch.setattr(service, "_fetch", unreachable)
    monkeypatch.setattr(
        "backend.app.services.distance_service.distance_circuit_breaker", CircuitBreaker(3, 30)
    )

    result = await service.get_distance(Coordinates(0, 0), Coordinates(0, 1))

    assert result.distance_km == 111.19
    assert result.source == "haversine_fallback"

@pytest.mark.asyncio
async def test_distance_upstream_failure_without_estimate_is_unavailable(monkeypatch):
    service = DistanceService(api_key="test-key", allow_estimate=False)

    async def unreachable(origin, destination):
        raise httpx.ConnectError("maps unreachable")

    monkeypatch.setattr(service, "_fetch", unreachable)
    monkeypatch.setattr(
        "backend.app.services.distance_service.distance_circuit_breaker", CircuitBreaker(3, 30)
    )

    with pytest.raises(DistanceUnavailableError) as exc_info:
        await service.get_distance(Coordinates(0, 0), Coordinates(0, 1))

    assert exc_info.value.status_code == 503
    assert exc_info.value.error_code == "ERR_DISTANCE_UNAVAILABLE"

@pytest.mark.asyncio
async def test_no_distance_provider_without_estimate_is_unavailable():
    service = DistanceService(api_key=None, allow_estimate=False)

    with pytest.raises(DistanceUnavailableError):
        await service.get_distance(Coordinates(0, 0), Coordinates(0, 1))

@pytest.mark.asyncio
async def test_closed_redis_leaves_generation_untouched(closed_redis, monkeypatch):
    monkeypatch.setattr(redis_client_module, "redis_client", closed_redis)

    await pricing_cache.invalidate()

    assert closed_redis.store == {}
    assert await pricing_cache.current_generation() == "0"

@pytest.mark.asyncio
async def test_backfill_write_failure_still_prices(db_session, admin_user, monkeypatch):
    """A failed backfill write leaves the row readable with the backfilled table in memory."""
    record = VehiclePricing(
        category=VehicleCategory.CAR,
        vehicle_type="Sedan",
        vehicle_model="Etios",
        trip_type=TripType.ONE_WAY,
        distance_pricing={"50km": 12, "100km": 10, "150km": 8},
        created_by_id=admin_user.id,
    )
    db_session.add(record)
    await db_session.commit()
    await db_session.refresh(record)

    async def failing_commit():
        raise OperationalError("UPDATE vehicle_pricing", {}, Exception("database is locked"))

    monkeypatch.setattr(db_session, "commit", failing_commit)

    await PricingStore.backfill_tiers(db_session, record)

    assert record.distance_pricing["300km"] == 8
    assert record.vehicle_model == "Etios"
