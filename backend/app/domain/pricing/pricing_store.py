"""
Vehicle Pricing Store.

Create, update, deactivate and bulk-upsert pricing rows, plus the lazy
backfill of the 200/250/300km tiers that older three-tier rows lack.

Validation happens here, before anything is written. Uniqueness of the
active (category, vehicle_type, vehicle_model, trip_type) key is left to the
partial unique index; a violation surfaces as DuplicatePricingError.
Every successful write invalidates the pricing cache.
"""

import logging
import math
from numbers import Real
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from backend.app.core.exceptions import (
    AppException,
    DuplicatePricingError,
    PricingValidationError,
    ResourceNotFoundError,
)
from backend.app.domain.pricing.tiers import TIER_KEYS, backfill_tier_values
from backend.app.models.pricing_enums import TripType, VehicleCategory
from backend.app.models.vehicle_pricing import VehiclePricing
from backend.app.services.pricing_cache import pricing_cache

logger = logging.getLogger(__name__)

KEY_FIELDS = ("category", "vehicle_type", "vehicle_model", "trip_type")
UPDATABLE_FIELDS = ("auto_price", "distance_pricing", "notes", "is_active", "is_default")


def parse_category(value: Any) -> VehicleCategory:
    try:
        return VehicleCategory(value)
    except ValueError:
        raise PricingValidationError(
            f"Unknown vehicle category: {value}",
            details={"allowed": [c.value for c in VehicleCategory]}
        )


def parse_trip_type(value: Any) -> TripType:
    try:
        return TripType(value)
    except ValueError:
        raise PricingValidationError(
            f"Unknown trip type: {value}",
            details={"allowed": [t.value for t in TripType]}
        )


def _require_text(fields: Mapping[str, Any], name: str) -> str:
    value = fields.get(name)
    if not isinstance(value, str) or not value.strip():
        raise PricingValidationError(f"{name} is required")
    return value.strip()


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def validate_rates(
    category: VehicleCategory,
    auto_price: Any,
    distance_pricing: Optional[Mapping[str, Any]],
) -> Tuple[float, Optional[Dict[str, float]]]:
    """
    Check the rate fields for a category and return them normalized.

    auto: auto_price > 0, no tier table.
    car/bus: all six tiers present, finite and >= 0; auto_price is stored as 0.
    """
    if category == VehicleCategory.AUTO:
        if not _is_number(auto_price) or auto_price <= 0:
            raise PricingValidationError(
                "Auto price is required and must be greater than 0 for auto category"
            )
        return float(auto_price), None

    message = (
        "Distance pricing is required for car and bus categories "
        "(50km, 100km, 150km, 200km, 250km, 300km)"
    )
    if not isinstance(distance_pricing, Mapping):
        raise PricingValidationError(message)

    missing = [key for key in TIER_KEYS if distance_pricing.get(key) is None]
    unknown = sorted(set(distance_pricing) - set(TIER_KEYS))
    if missing or unknown:
        raise PricingValidationError(message, details={"missing_tiers": missing, "unknown_tiers": unknown})

    invalid = [key for key in TIER_KEYS if not _is_number(distance_pricing[key]) or distance_pricing[key] < 0]
    if invalid:
        raise PricingValidationError(
            "Distance pricing rates must be finite numbers >= 0",
            details={"invalid_tiers": invalid}
        )

    return 0.0, {key: float(distance_pricing[key]) for key in TIER_KEYS}


async def rollback_and_reload(db: AsyncSession, *instances) -> None:
    """Roll back a failed write and reload the given rows so they stay readable."""
    await db.rollback()
    for instance in instances:
        await db.refresh(instance)


class PricingStore:

    @staticmethod
    async def get_record(db: AsyncSession, record_id: int) -> VehiclePricing:
        record = await db.get(VehiclePricing, record_id)
        if record is None:
            raise ResourceNotFoundError("Vehicle pricing", record_id)
        return record

    @staticmethod
    async def find_active(
        db: AsyncSession,
        category: VehicleCategory,
        vehicle_type: str,
        vehicle_model: str,
        trip_type: TripType,
    ) -> Optional[VehiclePricing]:
        result = await db.execute(
            select(VehiclePricing).where(
                VehiclePricing.category == category,
                VehiclePricing.vehicle_type == vehicle_type,
                VehiclePricing.vehicle_model == vehicle_model,
                VehiclePricing.trip_type == trip_type,
                VehiclePricing.is_active == True,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_default(
        db: AsyncSession,
        category: VehicleCategory,
        vehicle_type: str,
        trip_type: TripType,
    ) -> Optional[VehiclePricing]:
        result = await db.execute(
            select(VehiclePricing).where(
                VehiclePricing.category == category,
                VehiclePricing.vehicle_type == vehicle_type,
                VehiclePricing.trip_type == trip_type,
                VehiclePricing.is_default == True,
                VehiclePricing.is_active == True,
            ).order_by(VehiclePricing.updated_at.desc(), VehiclePricing.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _clear_other_defaults(
        db: AsyncSession,
        category: VehicleCategory,
        vehicle_type: str,
        trip_type: TripType,
        keep_id: Optional[int] = None,
    ) -> None:
        # One default per (category, vehicle_type, trip_type)
        conditions = [
            VehiclePricing.category == category,
            VehiclePricing.vehicle_type == vehicle_type,
            VehiclePricing.trip_type == trip_type,
            VehiclePricing.is_default == True,
        ]
        if keep_id is not None:
            conditions.append(VehiclePricing.id != keep_id)
        await db.execute(
            update(VehiclePricing).where(*conditions).values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )

    @staticmethod
    async def create_record(db: AsyncSession, fields: Mapping[str, Any], actor_id: int) -> VehiclePricing:
        """
        Create a pricing row.

        Raises:
            PricingValidationError: malformed fields
            DuplicatePricingError: an active row already exists for the key
        """
        category = parse_category(fields.get("category"))
        trip_type = parse_trip_type(fields.get("trip_type"))
        vehicle_type = _require_text(fields, "vehicle_type")
        vehicle_model = _require_text(fields, "vehicle_model")
        auto_price, distance_pricing = validate_rates(
            category, fields.get("auto_price"), fields.get("distance_pricing")
        )
        is_active = bool(fields.get("is_active", True))
        is_default = bool(fields.get("is_default", False))

        record = VehiclePricing(
            category=category,
            vehicle_type=vehicle_type,
            vehicle_model=vehicle_model,
            trip_type=trip_type,
            auto_price=auto_price,
            distance_pricing=distance_pricing,
            is_active=is_active,
            is_default=is_default,
            notes=fields.get("notes"),
            created_by_id=actor_id,
        )

        try:
            if is_default and is_active:
                await PricingStore._clear_other_defaults(db, category, vehicle_type, trip_type)
            db.add(record)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise DuplicatePricingError(category.value, vehicle_type, vehicle_model, trip_type.value)

        await db.refresh(record)
        await pricing_cache.invalidate()
        logger.info(
            "Created pricing %s for %s/%s/%s (%s)",
            record.id, category.value, vehicle_type, vehicle_model, trip_type.value
        )
        return record

    @staticmethod
    async def update_record(
        db: AsyncSession, record_id: int, changes: Mapping[str, Any], actor_id: int
    ) -> VehiclePricing:
        """
        Apply a partial update.

        The rate rules are re-checked against the merged row. A supplied
        distance_pricing replaces the whole table. The key fields
        (category, vehicle_type, vehicle_model, trip_type) cannot change.
        """
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise PricingValidationError(
                f"Fields cannot be updated: {', '.join(unknown)}",
                details={"updatable": list(UPDATABLE_FIELDS)}
            )

        record = await PricingStore.get_record(db, record_id)
        category = VehicleCategory(record.category)
        key = (category.value, record.vehicle_type, record.vehicle_model, TripType(record.trip_type).value)

        if "distance_pricing" in changes:
            merged_table = changes["distance_pricing"]
        elif record.distance_pricing is not None:
            merged_table = backfill_tier_values(record.distance_pricing)
        else:
            merged_table = None
        auto_price, distance_pricing = validate_rates(
            category, changes.get("auto_price", record.auto_price), merged_table
        )

        record.auto_price = auto_price
        record.distance_pricing = distance_pricing
        if "notes" in changes:
            record.notes = changes["notes"]
        if changes.get("is_active") is not None:
            record.is_active = bool(changes["is_active"])
        if changes.get("is_default") is not None:
            record.is_default = bool(changes["is_default"])
        record.updated_by_id = actor_id

        try:
            if record.is_default and record.is_active:
                await PricingStore._clear_other_defaults(
                    db, category, record.vehicle_type, TripType(record.trip_type), keep_id=record.id
                )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise DuplicatePricingError(*key)

        await db.refresh(record)
        await pricing_cache.invalidate()
        logger.info("Updated pricing %s (%s)", record.id, ", ".join(sorted(changes)) or "no fields")
        return record

    @staticmethod
    async def soft_delete(db: AsyncSession, record_id: int, actor_id: int) -> VehiclePricing:
        """Deactivate a row. It is kept for history but never resolved again."""
        record = await PricingStore.get_record(db, record_id)
        record.is_active = False
        record.updated_by_id = actor_id
        await db.commit()
        await db.refresh(record)
        await pricing_cache.invalidate()
        logger.info("Deactivated pricing %s", record.id)
        return record

    @staticmethod
    async def backfill_tiers(db: AsyncSession, record: VehiclePricing) -> VehiclePricing:
        """Fill missing 200/250/300km tiers of one row (no-op when complete or auto)."""
        await PricingStore._backfill([record], db)
        return record

    @staticmethod
    async def _backfill(records: List[VehiclePricing], db: AsyncSession) -> int:
        """
        Backfill and persist a batch of rows in one commit.

        A failed write is logged and swallowed: the rows still carry the
        backfilled tables in memory so the caller can price with them.
        """
        pending = [(record, backfill_tier_values(record.distance_pricing)) for record in records if record.needs_backfill]
        if not pending:
            return 0

        ids = [record.id for record, _ in pending]
        for record, table in pending:
            record.distance_pricing = table

        try:
            await db.commit()
        except SQLAlchemyError as e:
            logger.warning("Tier backfill for pricing %s not persisted: %s", ids, e)
            await rollback_and_reload(db, *[record for record, _ in pending])
            for record, table in pending:
                set_committed_value(record, "distance_pricing", table)
            return 0

        for record, _ in pending:
            await db.refresh(record)
        await pricing_cache.invalidate()
        logger.info("Backfilled distance tiers for pricing %s", ids)
        return len(pending)

    @staticmethod
    async def list_records(
        db: AsyncSession,
        category: Optional[VehicleCategory] = None,
        trip_type: Optional[TripType] = None,
        vehicle_type: Optional[str] = None,
        include_inactive: bool = False,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[VehiclePricing], int]:
        """Paginated listing; rows on the page are backfilled as they are read."""
        conditions = []
        if not include_inactive:
            conditions.append(VehiclePricing.is_active == True)
        if category is not None:
            conditions.append(VehiclePricing.category == category)
        if trip_type is not None:
            conditions.append(VehiclePricing.trip_type == trip_type)
        if vehicle_type:
            conditions.append(VehiclePricing.vehicle_type == vehicle_type)

        total_result = await db.execute(select(func.count(VehiclePricing.id)).where(*conditions))
        total = total_result.scalar()

        result = await db.execute(
            select(VehiclePricing).where(*conditions)
            .order_by(VehiclePricing.category, VehiclePricing.vehicle_type, VehiclePricing.vehicle_model, VehiclePricing.id)
            .offset((page - 1) * page_size).limit(page_size)
        )
        records = list(result.scalars().all())
        await PricingStore._backfill(records, db)
        return records, total

    @staticmethod
    async def list_categories(db: AsyncSession) -> List[Dict[str, Any]]:
        """Active catalog grouped as category -> vehicle types -> models."""
        result = await db.execute(
            select(VehiclePricing.category, VehiclePricing.vehicle_type, VehiclePricing.vehicle_model)
            .where(VehiclePricing.is_active == True)
            .distinct()
        )
        grouped: Dict[str, Dict[str, set]] = {}
        for category, vehicle_type, vehicle_model in result.all():
            grouped.setdefault(VehicleCategory(category).value, {}).setdefault(vehicle_type, set()).add(vehicle_model)

        return [
            {
                "category": category,
                "types": [
                    {"vehicle_type": vehicle_type, "models": sorted(models)}
                    for vehicle_type, models in sorted(types.items())
                ],
            }
            for category, types in sorted(grouped.items())
        ]

    @staticmethod
    async def bulk_upsert(
        db: AsyncSession, items: List[Mapping[str, Any]], actor_id: int
    ) -> List[Dict[str, Any]]:
        """
        Create or update each item by its key.

        Items are applied one at a time; a failing item is reported and does
        not stop the rest.
        """
        results = []
        for index, item in enumerate(items):
            outcome = {"index": index}
            for name in KEY_FIELDS:
                outcome[name] = str(item[name]) if item.get(name) is not None else None
            try:
                existing = await PricingStore.find_active(
                    db,
                    parse_category(item.get("category")),
                    _require_text(item, "vehicle_type"),
                    _require_text(item, "vehicle_model"),
                    parse_trip_type(item.get("trip_type")),
                )
                if existing is not None:
                    changes = {name: item[name] for name in UPDATABLE_FIELDS if name in item}
                    record = await PricingStore.update_record(db, existing.id, changes, actor_id)
                    outcome.update(action="updated", id=record.id)
                else:
                    record = await PricingStore.create_record(db, item, actor_id)
                    outcome.update(action="created", id=record.id)
            except AppException as e:
                outcome.update(action="error", error=e.message)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.warning("Bulk pricing item %s failed: %s", index, e)
                outcome.update(action="error", error="Database error while saving pricing")
            results.append(outcome)

        logger.info(
            "Bulk pricing upsert: %s items, %s errors",
            len(results), sum(1 for r in results if r["action"] == "error")
        )
        return results

    @staticmethod
    async def backfill_all(db: AsyncSession) -> Dict[str, int]:
        """Backfill every tiered row, active or not."""
        result = await db.execute(
            select(VehiclePricing).where(VehiclePricing.category != VehicleCategory.AUTO)
        )
        records = list(result.scalars().all())
        stale = [record for record in records if record.needs_backfill]
        backfilled = await PricingStore._backfill(stale, db)
        return {"scanned": len(records), "backfilled": backfilled}
