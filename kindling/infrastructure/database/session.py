# kindling/infrastructure/database/session.py

import json
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


@lru_cache
def get_engine(database_url: str) -> AsyncEngine:
    """Engine per URL, created on first use so importing the app never connects."""
    return create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        # Audit snapshots may carry datetimes and UUIDs.
        json_serializer=lambda obj: json.dumps(obj, default=str),
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create missing tables (development only; production schemas are migrated)."""
    from kindling.infrastructure.database import models  # noqa: F401  registers tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
