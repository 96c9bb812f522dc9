"""Create the schema directly from the table metadata and optionally seed a clinic.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --seed-clinic "Clinica Demo" --manager-email manager@example.com
"""

import argparse
import asyncio
from uuid import UUID

from sqlalchemy import text

from clinic_confirm.config import settings
from clinic_confirm.core.security import create_access_token
from clinic_confirm.database import AsyncSessionLocal, engine
from clinic_confirm.models import clinics, metadata, users


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        await conn.run_sync(metadata.create_all)

    print("✓ Database initialized successfully!")


async def seed_clinic(
    name: str,
    manager_email: str,
    timezone: str,
    export_hour: int,
    deadline_hour: int,
) -> tuple[UUID, UUID]:
    """Insert a clinic with one manager and return their IDs."""
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            clinics.insert()
            .values(
                name=name,
                timezone=timezone,
                export_hour=export_hour,
                deadline_hour=deadline_hour,
            )
            .returning(clinics.c.id)
        )
        clinic_id = result.scalar_one()

        result = await db.execute(
            users.insert()
            .values(clinic_id=clinic_id, email=manager_email, role="manager")
            .returning(users.c.id)
        )
        manager_id = result.scalar_one()
        await db.commit()

    return clinic_id, manager_id


async def main(args: argparse.Namespace) -> None:
    await init_db()

    if args.seed_clinic:
        clinic_id, manager_id = await seed_clinic(
            args.seed_clinic,
            args.manager_email,
            args.timezone,
            args.export_hour,
            args.deadline_hour,
        )
        token = create_access_token({"sub": str(manager_id)})
        print(f"✓ Clinic {clinic_id} created with manager {manager_id}")
        print(f"  Manager access token: {token}")

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize the clinic-confirm database")
    parser.add_argument("--seed-clinic", help="Create a clinic with this name")
    parser.add_argument("--manager-email", default="manager@example.com")
    parser.add_argument("--timezone", default=settings.default_timezone)
    parser.add_argument("--export-hour", type=int, default=10)
    parser.add_argument("--deadline-hour", type=int, default=18)

    asyncio.run(main(parser.parse_args()))
