"""
Database seeding script for development data.

Creates an admin, two pilots and a few vehicles so deployments can be
scheduled against a fresh database.

Run with ``python -m fleetops.seed_fleet`` after the database is set up.
"""

import asyncio

from sqlalchemy import select

from fleetops.app.db.session import AsyncSessionLocal, create_tables
from fleetops.app.models.enums import UserRole, VehicleStatus
from fleetops.app.models.user import User
from fleetops.app.models.vehicle import Vehicle

SEED_USERS = [
    ("admin", "Fleet Admin", UserRole.ADMIN),
    ("pilot_ravi", "Ravi Kumar", UserRole.PILOT),
    ("pilot_asha", "Asha Nair", UserRole.PILOT),
]

SEED_VEHICLES = [
    ("EVZ_VEH_001", "KA01EV0001", "Tata", "Nexon EV", 40.5, 312),
    ("EVZ_VEH_002", "KA01EV0002", "MG", "ZS EV", 50.3, 461),
    ("EVZ_VEH_003", "KA01EV0003", "Mahindra", "XUV400", 39.4, 375),
]


async def seed_fleet(db) -> bool:
    """
    Seed users and vehicles.

    Returns:
        False if the admin user already exists and nothing was added
    """
    result = await db.execute(select(User).where(User.username == "admin"))
    if result.scalar_one_or_none():
        print("ℹ️  Seed data already present, skipping")
        return False

    for username, full_name, role in SEED_USERS:
        db.add(User(
            email=f"{username}@fleetops.local",
            username=username,
            full_name=full_name,
            role=role,
            is_active=True
        ))
        print(f"✅ Created {role.value} user: {username}")

    for code, registration, make, model, capacity, range_km in SEED_VEHICLES:
        db.add(Vehicle(
            vehicle_code=code,
            registration_number=registration,
            make=make,
            model=model,
            battery_capacity_kwh=capacity,
            range_km=range_km,
            status=VehicleStatus.AVAILABLE,
            current_hub="Koramangala"
        ))
        print(f"✅ Created vehicle {code} ({make} {model})")

    await db.commit()
    return True


async def main():
    await create_tables()
    async with AsyncSessionLocal() as db:
        print("🌱 Starting fleet seeding...")
        if await seed_fleet(db):
            print("\n🎉 Fleet seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
