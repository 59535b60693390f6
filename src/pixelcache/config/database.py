"""
Database configuration and connection management.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from pixelcache.config.settings import settings
from pixelcache.db.models import Base


class DatabaseManager:
    """Manages database connections and sessions.

    Parameters
    ----------
    database_url : str | None
        SQLAlchemy async URL. Defaults to the configured settings URL.
    echo : bool | None
        Log every SQL statement. Defaults to ``settings.db_log_queries``.
    """

    def __init__(
        self, database_url: str | None = None, echo: bool | None = None
    ) -> None:
        self._database_url = database_url
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def database_url(self) -> str:
        """URL the engine is (or will be) bound to."""
        return self._database_url or settings.effective_database_url

    def get_engine(self) -> AsyncEngine:
        """Get or create async database engine."""
        if self._engine is None:
            database_url = self.database_url
            echo = self._echo
            if echo is None:
                echo = settings.debug or settings.db_log_queries

            engine_kwargs: dict[str, Any] = {"echo": echo, "future": True}

            # An in-memory sqlite database only lives as long as its connection
            if database_url.startswith("sqlite") and ":memory:" in database_url:
                engine_kwargs.update(
                    {
                        "poolclass": StaticPool,
                        "connect_args": {"check_same_thread": False},
                    }
                )
            elif not database_url.startswith("sqlite"):
                engine_kwargs.update({"pool_pre_ping": True, "pool_recycle": 3600})

            self._engine = create_async_engine(database_url, **engine_kwargs)
        return self._engine

    def get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create session factory."""
        if self._session_factory is None:
            engine = self.get_engine()
            self._session_factory = async_sessionmaker(
                bind=engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._session_factory

    async def close(self) -> None:
        """Close database connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        self._session_factory = None

    async def create_tables(self) -> None:
        """Create database tables."""
        engine = self.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
