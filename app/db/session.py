from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the process-wide engine. Called once from the application lifespan."""
    options = {"echo": echo, "future": True}
    if not database_url.startswith("sqlite"):
        # pool_pre_ping: check connection is alive before use (avoids "connection is closed" errors
        # when DB or network closed idle connections).
        # pool_recycle: discard connections after this many seconds to avoid stale connections.
        options.update(pool_pre_ping=True, pool_recycle=300)
    return create_async_engine(database_url, **options)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.sessionmaker() as session:
        yield session


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
