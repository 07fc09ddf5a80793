"""
AuditPulse - Database Configuration

This module handles database connection setup using SQLAlchemy 2.0 async.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import MetaData

from app.config import settings


# Naming convention for constraints (helps with migrations)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    metadata = MetaData(naming_convention=convention)


def _engine_options(url: str) -> dict:
    options = {"echo": settings.debug}  # Log SQL queries in debug mode
    if not url.startswith("sqlite"):
        options.update(
            pool_pre_ping=True,   # Verify connections before use
            pool_size=5,
            max_overflow=10,
        )
    return options


# Create async engine
engine = create_async_engine(
    settings.database_url_async,
    **_engine_options(settings.database_url_async),
)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database session.
    Use with FastAPI's Depends().
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """
    Dependency returning the session factory.

    The snapshot gatherer opens one session per concurrent fetch, which a
    single request-scoped session cannot serve.
    """
    return async_session_maker


async def init_db():
    """
    Initialize database - create all tables.
    Use this for development/testing only.
    """
    # Register every mapped table on Base.metadata
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()
