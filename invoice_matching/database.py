"""Database configuration and session management."""

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from invoice_matching.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Build the application engine on first use."""
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(settings.database_url, echo=settings.debug)
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=10,  # Max persistent connections
        max_overflow=20,  # Additional transient connections under load
        pool_recycle=3600,  # Recycle connections after 1 hour
    )


@lru_cache(maxsize=1)
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine | None = None) -> None:
    """Create all tables for the registered models.

    Production schemas are expected to come from migrations; this is used by
    tests and by deployments that opt in via AUTO_CREATE_SCHEMA.
    """
    import invoice_matching.models  # noqa: F401 - register mappers

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
