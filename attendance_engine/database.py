"""Database configuration and session management."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from attendance_engine.config import settings


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the async database engine."""
    url = database_url or settings.async_database_url

    engine_kwargs = {
        "echo": settings.app_debug,
    }

    if url.startswith("sqlite"):
        # SQLite picks its own pool; sizing arguments do not apply
        pass
    elif settings.is_development:
        # Use NullPool in development for easier debugging
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_size"] = settings.database_pool_size
        engine_kwargs["max_overflow"] = settings.database_max_overflow
        engine_kwargs["pool_pre_ping"] = True

    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine instance
engine = create_engine()

# Session factory
async_session_factory = create_session_factory(engine)


async def init_db(target: AsyncEngine | None = None) -> None:
    """Initialize database (create tables if needed)."""
    from attendance_engine.models import Base

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
