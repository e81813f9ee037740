"""Engine and session factories for the business store.

Nothing connects at import time. Celery tasks build a fresh engine per
task because each task runs on its own event loop.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from cfp_engine.core.config import Settings, settings as default_settings
from cfp_engine.db.base import Base

logger = logging.getLogger(__name__)


def make_engine(settings: Settings = default_settings) -> AsyncEngine:
    return create_async_engine(
        settings.postgres_url,
        echo=False,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    import cfp_engine.models  # noqa: F401  registers the mapped tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Schema ensured for %s", engine.url.render_as_string(hide_password=True))
