"""
Database Connection Management

Async SQLAlchemy 2.0 engine and session handling. A Database instance owns
one engine and its session factory; services receive it explicitly instead
of reaching for module-level globals.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import time

import structlog
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from marketos.config import get_settings
from marketos.database.models import Base

logger = structlog.get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Async database handle.

    Example:
        db = Database("sqlite+aiosqlite:///marketos.db")
        await db.connect()
        async with db.session() as session:
            await session.execute(query)
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        settings = get_settings()
        self.url = url or settings.database.async_url
        self.echo = settings.database.echo if echo is None else echo
        self.pool_size = settings.database.pool_size
        self.max_overflow = settings.database.max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def engine_options(self) -> dict:
        options = {"echo": self.echo, "pool_pre_ping": True}
        if self.url.startswith("postgresql"):
            # API workers and Prefect jobs each hold their own pool
            options["pool_size"] = self.pool_size
            options["max_overflow"] = self.max_overflow
        return options

    async def connect(self, create_schema: bool = False) -> AsyncEngine:
        """
        Create the engine and verify connectivity.

        Args:
            create_schema: Create missing tables (development and tests)
        """
        if self._engine is not None:
            logger.warning("Database already initialized")
            return self._engine

        self._engine = create_async_engine(self.url, **self.engine_options())
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        try:
            async with self._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                if create_schema:
                    await conn.run_sync(Base.metadata.create_all)
            logger.info("Database connection established", dialect=self._engine.dialect.name)
        except Exception as e:
            logger.error("Failed to connect to database", error=str(e))
            await self.dispose()
            raise

        return self._engine

    async def dispose(self) -> None:
        """Close all pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session scope that commits on success and rolls back on error.

        Yields:
            AsyncSession: Database session
        """
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call connect() first.")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health(self) -> dict:
        """
        Check database health status.

        Returns:
            dict: Health status with latency information
        """
        try:
            start = time.perf_counter()
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            latency_ms = (time.perf_counter() - start) * 1000
            return {
                "status": "healthy",
                "latency_ms": round(latency_ms, 2),
                "dialect": self.dialect_name,
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
            }
