"""
PostgreSQL async database connection using SQLAlchemy 2.0.
Backs the document store: every record document lives in one JSONB table.
"""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from portal.core.config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _create_engine():
    """Create async engine; SSL is configured through the URL in config.py."""
    engine_options = {
        "echo": settings.DEBUG,
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 300,  # Recycle connections every 5 minutes
    }
    return create_async_engine(settings.postgres_url, **engine_options)


# Create async engine
engine = _create_engine()

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


async def init_postgres() -> None:
    """Initialize PostgreSQL database - create all tables."""
    # Register the table on Base.metadata
    from portal.models import documents  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_postgres() -> None:
    """Close PostgreSQL connections."""
    await engine.dispose()
