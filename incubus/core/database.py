import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from incubus.core.config import get_settings
from incubus.infrastructure.db.base import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Async SQLAlchemy engine and session factory shared by the API and workers."""

    _engine: AsyncEngine | None = None
    _session_factory: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    async def initialize(cls) -> None:
        if cls._engine is not None:
            return

        settings = get_settings()
        engine_kwargs: dict = {
            "echo": settings.INCUBUS_DATABASE_ECHO,
            "pool_pre_ping": True,
        }
        if not settings.database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=settings.INCUBUS_DATABASE_POOL_SIZE,
                max_overflow=settings.INCUBUS_DATABASE_MAX_OVERFLOW,
                pool_recycle=3600,
            )
        cls._engine = create_async_engine(settings.database_url, **engine_kwargs)
        cls._session_factory = async_sessionmaker(
            cls._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        # Ensure model modules are imported before metadata usage.
        from incubus.infrastructure.db import models  # noqa: F401

        if settings.INCUBUS_AUTO_CREATE_TABLES:
            async with cls._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ensured")

    @classmethod
    async def close(cls) -> None:
        if cls._engine is not None:
            await cls._engine.dispose()
            cls._engine = None
            cls._session_factory = None
            logger.info("Database engine closed")

    @classmethod
    def session_factory(cls) -> async_sessionmaker[AsyncSession]:
        if cls._session_factory is None:
            raise RuntimeError(
                "Database manager is not initialized. Call initialize() first."
            )
        return cls._session_factory


AFTER_COMMIT_KEY = "after_commit"


def after_commit(session: AsyncSession, callback: Callable[[], Awaitable[None]]) -> None:
    """Run ``callback`` once ``get_session`` has committed ``session``; dropped on rollback."""
    session.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    session_maker = DatabaseManager.session_factory()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            session.info.pop(AFTER_COMMIT_KEY, None)
            await session.rollback()
            raise
        for callback in session.info.pop(AFTER_COMMIT_KEY, ()):
            await callback()
