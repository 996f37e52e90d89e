"""
Vehicle Pricing Resolver.

Finds the pricing row that applies to a vehicle configuration.
Follows priority:
1. Exact active row for (category, vehicle_type, vehicle_model, trip_type)
2. Model omitted: the active default row for (category, vehicle_type, trip_type)
3. Model omitted: a seed default synthesized and persisted under the
   system identity (skipped when that identity does not exist)

Anything else resolves to None; the HTTP layer turns that into a 404.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from backend.app.core.config import settings
from backend.app.core.exceptions import DuplicatePricingError
from backend.app.domain.pricing.fare_calculator import has_rates
from backend.app.domain.pricing.pricing_store import PricingStore, rollback_and_reload
from backend.app.domain.pricing.snapshot import VehiclePricingSnapshot
from backend.app.models.enums import UserRole
from backend.app.models.pricing_enums import TripType, VehicleCategory
from backend.app.models.user import User
from backend.app.models.vehicle import Vehicle
from backend.app.models.vehicle_pricing import VehiclePricing

logger = logging.getLogger(__name__)

SEED_MODEL_NAMES: Dict[VehicleCategory, str] = {
    VehicleCategory.AUTO: "Standard Auto",
    VehicleCategory.CAR: "Standard Car",
    VehicleCategory.BUS: "Standard Bus",
}

SEED_DISTANCE_PRICING: Dict[VehicleCategory, Dict[str, float]] = {
    VehicleCategory.CAR: {"50km": 12, "100km": 10, "150km": 8, "200km": 7, "250km": 6, "300km": 5},
    VehicleCategory.BUS: {"50km": 25, "100km": 20, "150km": 18, "200km": 16, "250km": 15, "300km": 14},
}

SEED_AUTO_PRICE = 200


class PricingResolver:

    @staticmethod
    async def resolve(
        db: AsyncSession,
        category: VehicleCategory,
        vehicle_type: str,
        vehicle_model: Optional[str],
        trip_type: TripType,
    ) -> Optional[VehiclePricing]:
        """
        Resolve the applicable pricing row, backfilled to six tiers.

        An explicit vehicle_model that has no active row resolves to None;
        defaults only stand in when the model is omitted.
        """
        category = VehicleCategory(category)
        trip_type = TripType(trip_type)

        if vehicle_model:
            record = await PricingStore.find_active(db, category, vehicle_type, vehicle_model, trip_type)
        else:
            record = await PricingStore.find_default(db, category, vehicle_type, trip_type)
            if record is None:
                record = await PricingResolver.synthesize_default(db, category, vehicle_type, trip_type)

        if record is None:
            logger.info(
                "No pricing for %s/%s/%s (%s)",
                category.value, vehicle_type, vehicle_model or "*", trip_type.value
            )
            return None

        return await PricingStore.backfill_tiers(db, record)

    @staticmethod
    async def get_system_actor(db: AsyncSession) -> Optional[User]:
        result = await db.execute(
            select(User).where(
                User.username == settings.system_actor_username,
                User.role == UserRole.SYSTEM,
                User.is_active == True,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def ensure_system_actor(db: AsyncSession) -> User:
        """Create the system identity if it does not exist yet."""
        actor = await PricingResolver.get_system_actor(db)
        if actor is not None:
            return actor

        actor = User(
            username=settings.system_actor_username,
            email=f"{settings.system_actor_username}@system.chalosawari.local",
            role=UserRole.SYSTEM,
            is_active=True,
        )
        db.add(actor)
        await db.commit()
        await db.refresh(actor)
        logger.info("Created system actor %s (id=%s)", actor.username, actor.id)
        return actor

    @staticmethod
    async def synthesize_default(
        db: AsyncSession,
        category: VehicleCategory,
        vehicle_type: str,
        trip_type: TripType,
    ) -> Optional[VehiclePricing]:
        """
        Persist a seed default row for a configuration that has none.

        Returns None when no system identity exists or the write fails.
        If a concurrent request created the same row first, that row is
        returned instead.
        """
        actor = await PricingResolver.get_system_actor(db)
        if actor is None:
            logger.warning(
                "Cannot synthesize default pricing for %s/%s (%s): no system actor '%s'",
                category.value, vehicle_type, trip_type.value, settings.system_actor_username
            )
            return None

        seed_model = SEED_MODEL_NAMES[category]
        existing = await PricingStore.find_active(db, category, vehicle_type, seed_model, trip_type)
        if existing is not None:
            return existing

        fields = {
            "category": category.value,
            "vehicle_type": vehicle_type,
            "vehicle_model": seed_model,
            "trip_type": trip_type.value,
            "auto_price": SEED_AUTO_PRICE if category == VehicleCategory.AUTO else 0,
            "distance_pricing": SEED_DISTANCE_PRICING.get(category),
            "is_default": True,
            "notes": "Default pricing created automatically",
        }
        try:
            record = await PricingStore.create_record(db, fields, actor.id)
        except DuplicatePricingError:
            return await PricingStore.find_active(db, category, vehicle_type, seed_model, trip_type)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning(
                "Default pricing synthesis failed for %s/%s (%s): %s",
                category.value, vehicle_type, trip_type.value, e
            )
            return None

        logger.info(
            "Synthesized default pricing %s for %s/%s (%s)",
            record.id, category.value, vehicle_type, trip_type.value
        )
        return record

    @staticmethod
    async def resolve_for_vehicle(
        db: AsyncSession,
        vehicle: Vehicle,
        trip_type: TripType,
        vehicle_model: Optional[str] = None,
    ) -> Optional[VehiclePricing]:
        """
        Resolve pricing from a vehicle's pricing reference.

        The vehicle snapshot is refreshed only when the vehicle's own model
        was resolved, not an override.
        """
        own_model = vehicle.pricing_vehicle_model
        record = await PricingResolver.resolve(
            db,
            vehicle.pricing_category,
            vehicle.pricing_vehicle_type,
            vehicle_model or own_model,
            trip_type,
        )
        if vehicle_model in (None, own_model):
            await PricingResolver.refresh_vehicle_snapshot(db, vehicle, trip_type, record)
        return record

    @staticmethod
    async def refresh_vehicle_snapshot(
        db: AsyncSession,
        vehicle: Vehicle,
        trip_type: TripType,
        record: Optional[VehiclePricing],
    ) -> VehiclePricingSnapshot:
        """
        Write the resolved rates for one trip type into the vehicle snapshot.

        A failed write is logged and swallowed; the returned snapshot is
        what the vehicle should carry either way.
        """
        await db.refresh(vehicle)
        now = datetime.now(timezone.utc)
        current = VehiclePricingSnapshot.for_vehicle(vehicle)
        if record is not None and has_rates(record):
            updated = current.with_record(record, now)
        else:
            updated = current.without_trip(trip_type, now)

        if current.same_rates(updated) and vehicle.pricing_snapshot:
            return current

        vehicle_id = vehicle.id
        vehicle.pricing_snapshot = updated.to_payload()
        vehicle.pricing_updated_at = now
        try:
            await db.commit()
        except SQLAlchemyError as e:
            logger.warning("Pricing snapshot for vehicle %s not saved: %s", vehicle_id, e)
            if record is None:
                await rollback_and_reload(db, vehicle)
            else:
                table = record.distance_pricing
                await rollback_and_reload(db, vehicle, record)
                set_committed_value(record, "distance_pricing", table)
            return updated

        await db.refresh(vehicle)
        logger.info("Refreshed pricing snapshot for vehicle %s", vehicle_id)
        return updated
