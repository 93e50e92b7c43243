"""
Database seeding script for initial users.

Creates one ADMIN, one EMPLOYEE (field worker) and one USER (citizen) for
local development. Run after the database is reachable; tables are created
if missing.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from civicconnect.app.db.session import AsyncSessionLocal, close_engine, init_models
from civicconnect.app.models.user import User
from civicconnect.app.models.enums import UserRole
from civicconnect.app.core.security import get_password_hash
from sqlalchemy import select

# Imported so create_all sees every table
from civicconnect.app.models import audit_log, notification, report, report_image, report_timeline

SEED_USERS = [
    ("admin@civicconnect.local", "Admin", "User", "admin123", UserRole.ADMIN),
    ("worker@civicconnect.local", "Field", "Worker", "worker123", UserRole.EMPLOYEE),
    ("citizen@civicconnect.local", "Jane", "Citizen", "citizen123", UserRole.USER),
]


async def seed_users():
    await init_models()

    async with AsyncSessionLocal() as db:
        print("Starting user seeding...")

        created = 0
        for email, first_name, last_name, password, role in SEED_USERS:
            result = await db.execute(select(User).where(User.email == email))
            if result.scalar_one_or_none():
                print(f"  {role.value:<9} {email} already exists, skipping")
                continue

            db.add(User(
                email=email,
                first_name=first_name,
                last_name=last_name,
                hashed_password=get_password_hash(password),
                role=role,
                is_active=True,
            ))
            created += 1
            print(f"  {role.value:<9} {email} / {password}")

        await db.commit()
        print(f"\nUser seeding completed: {created} created")

    await close_engine()


if __name__ == "__main__":
    asyncio.run(seed_users())
