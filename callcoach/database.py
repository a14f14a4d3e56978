"""Database engine and session management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from callcoach.config.settings import DatabaseConfig, settings

# Import models so they are attached to Base.metadata before table creation
from callcoach.models import Base  # noqa: F401 - ensures metadata is registered
from callcoach.models import analysis, call, coaching  # noqa: F401

logger = logging.getLogger(__name__)


def create_engine(config: DatabaseConfig | None = None, *, debug: bool | None = None) -> AsyncEngine:
    """Create an async engine with environment-appropriate pooling."""

    config = config or settings.database
    debug = settings.debug if debug is None else debug

    engine_options: dict[str, Any] = {
        "echo": debug,
        "future": True,
    }

    if config.url.startswith("sqlite"):
        engine_options["poolclass"] = NullPool
    else:
        engine_options["pool_pre_ping"] = True
        if config.serverless or debug:
            # Disable pooling when working with serverless databases (or in debug).
            engine_options["poolclass"] = NullPool

    return create_async_engine(config.url, **engine_options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Async context manager that yields a session and rolls back on error."""

    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_models(engine: AsyncEngine) -> None:
    """Create database tables if they do not exist."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Ensured database tables for %s.", engine.url.render_as_string(hide_password=True))


async def dispose_engine(engine: AsyncEngine) -> None:
    """Dispose of the engine and release pooled connections."""

    await engine.dispose()


__all__ = [
    "create_engine",
    "create_session_factory",
    "dispose_engine",
    "init_models",
    "session_scope",
]
