"""
Async SQLAlchemy engine and session factory.

Holds the trips, users and pricing settings tables.  Uses ``asyncpg`` as
the PostgreSQL driver; the pool is sized from ``database_pool_size`` /
``database_max_overflow`` so every API worker stays within the server's
connection budget.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

# Trips are handed to the domain layer after commit; keep loaded rows readable
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for the trip, user and pricing settings models."""


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
