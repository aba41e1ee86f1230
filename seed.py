"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - the pricing settings row (from the ``DEFAULT_*`` settings)
  - 4 sample customers and 4 sample drivers around Damascus
"""

import asyncio
import uuid

from src.config import settings
from src.domain.enums import UserRole
from src.infrastructure.database import async_session_factory, dispose_engine
from src.infrastructure.models import UserModel
from src.infrastructure.repositories import PricingSettingsRepository


CUSTOMERS = [
    {"name": "Rami Haddad", "phone": "0933000001"},
    {"name": "Lina Khoury", "phone": "0933000002"},
    {"name": "Omar Saleh", "phone": "0933000003"},
    {"name": "Maya Nasser", "phone": "0933000004"},
]

DRIVERS = [
    {"name": "Samer Aziz", "phone": "0944000001"},
    {"name": "Hadi Mansour", "phone": "0944000002"},
    {"name": "Karim Darwish", "phone": "0944000003"},
    {"name": "Yousef Hamdan", "phone": "0944000004"},
]


def pricing_defaults() -> dict:
    return {
        "base_fare": settings.default_base_fare,
        "per_km_fare": settings.default_per_km_fare,
        "commission_percent": settings.default_commission_percent,
        "vehicle_multipliers": dict(settings.default_vehicle_multipliers),
        "manager_contact": settings.default_manager_contact,
    }


async def seed():
    async with async_session_factory() as session:
        repo = PricingSettingsRepository(session, settings.settings_schema_version)
        config = await repo.ensure_defaults(pricing_defaults())
        print(
            f"  Pricing: base={config.base_fare} per_km={config.per_km_fare} "
            f"classes={len(config.vehicle_multipliers)}"
        )

        for role, people in ((UserRole.CUSTOMER, CUSTOMERS), (UserRole.DRIVER, DRIVERS)):
            for person in people:
                session.add(
                    UserModel(
                        id=str(uuid.uuid4()),
                        name=person["name"],
                        phone=person["phone"],
                        role=role,
                        is_verified=True,
                    )
                )
            print(f"  Created {len(people)} {role.value.lower()}s")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
