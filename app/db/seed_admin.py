"""
Create the tables and the first ADMIN user, then print an access token for it.

There is no login flow in this service; operators use the printed token (or their identity
provider's) to call the API. Run once with env set:
  SEED_ADMIN_EMAIL=admin@yourschool.org
  SEED_ADMIN_NAME="School Admin"

Creates:
- every table in Base.metadata (if not exists)
- users: one user with role ADMIN (if not exists)
"""
import asyncio
import os

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.security import create_access_token
from app.core import models  # noqa: F401  registers every table on Base.metadata
from app.core.config import settings
from app.db.session import Base, build_engine, build_sessionmaker

DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_FULL_NAME = "School Admin"


async def seed_admin(db: AsyncSession, email: str, full_name: str) -> User:
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    admin = result.scalar_one_or_none()
    if not admin:
        admin = User(full_name=full_name, email=email.lower(), role="ADMIN", status="ACTIVE")
        db.add(admin)
        await db.commit()
        print("Created ADMIN user:", email)
    else:
        print("ADMIN user already exists:", email)
    return admin


async def main() -> None:
    engine = build_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables ready.")

    email = os.getenv("SEED_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL)
    full_name = os.getenv("SEED_ADMIN_NAME", DEFAULT_ADMIN_FULL_NAME)
    async with build_sessionmaker(engine)() as db:
        try:
            admin = await seed_admin(db, email, full_name)
        except Exception:
            await db.rollback()
            raise
    await engine.dispose()

    token = create_access_token(subject={"user_id": str(admin.id)}, expires_minutes=60 * 24)
    print("Access token (24h):", token)


if __name__ == "__main__":
    asyncio.run(main())
