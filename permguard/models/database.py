"""
Database connection and session management.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)

from permguard.core.config import Settings, get_settings


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine; pool options only apply to pooled drivers."""
    options: dict = {"echo": settings.database.echo}
    if not settings.database.url.startswith("sqlite"):
        options.update(
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.pool_overflow,
            pool_timeout=settings.database.pool_timeout,
        )
    return create_async_engine(settings.database.url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: services keep using entities after a
    # per-user commit without triggering implicit (async-unsafe) loads
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database (create tables)."""
    from .base import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


settings = get_settings()
engine = create_engine(settings)
async_session_factory = create_session_factory(engine)


async def close_db() -> None:
    """Dispose the module engine's connection pool."""
    await engine.dispose()
