"""
Database seeding script for pricing.

Creates the ADMIN account and the system identity, makes sure every vehicle
type in the catalog has a default pricing record for both trip types, and
backfills the 200/250/300km tiers of older records.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.domain.pricing.pricing_resolver import PricingResolver
from backend.app.domain.pricing.pricing_store import PricingStore
from backend.app.models.user import User
from backend.app.models.enums import UserRole
from backend.app.models.pricing_enums import TripType, VehicleCategory
from sqlalchemy import select

VEHICLE_TYPES = {
    VehicleCategory.AUTO: ["Auto"],
    VehicleCategory.CAR: ["Sedan", "Hatchback", "SUV"],
    VehicleCategory.BUS: ["Mini Bus", "Luxury Bus", "Traveller"],
}


async def seed_admin(db):
    result = await db.execute(select(User).where(User.username == "admin"))
    if result.scalar_one_or_none():
        print("ADMIN user already exists, skipping")
        return

    db.add(User(email="admin@chalosawari.com", username="admin", role=UserRole.ADMIN, is_active=True))
    await db.commit()
    print("Created ADMIN user (username: admin)")


async def seed_pricing():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Starting pricing seeding...")
        await seed_admin(db)
        actor = await PricingResolver.ensure_system_actor(db)
        print(f"System actor: {actor.username} (id={actor.id})")

        for category, vehicle_types in VEHICLE_TYPES.items():
            for vehicle_type in vehicle_types:
                for trip_type in TripType:
                    record = await PricingResolver.resolve(db, category, vehicle_type, None, trip_type)
                    if record is None:
                        print(f"  could not seed {category.value}/{vehicle_type} ({trip_type.value})")
                    else:
                        print(f"  {category.value}/{vehicle_type}/{record.vehicle_model} ({trip_type.value}): id={record.id}")

        result = await PricingStore.backfill_all(db)
        print(f"Backfilled {result['backfilled']} of {result['scanned']} tiered records")

    await engine.dispose()
    print("Pricing seeding complete")


if __name__ == "__main__":
    asyncio.run(seed_pricing())
