# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Database Connection Manager — Async SQLAlchemy engine and session factory.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from prompt_catalog.storage.models import Base

logger = logging.getLogger("catalog.database")


class Database:
    """
    Manages the async SQLAlchemy engine and session factory.

    Usage:
        db = Database("postgresql+asyncpg://...")
        await db.init()       # Create tables (dev) or verify connection
        session = db.session() # Get a new AsyncSession
        await db.close()      # Dispose engine on shutdown
    """

    def __init__(self, database_url: str, timeout: float = 30.0) -> None:
        self.engine: AsyncEngine = create_async_engine(
            database_url,
            pool_size=10,
            max_overflow=20,
            pool_timeout=timeout,
            pool_pre_ping=True,
            echo=False,
        )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def session(self) -> AsyncSession:
        """Create a new async session."""
        return self.session_factory()

    async def init(self) -> None:
        """
        Create all tables if they don't exist.

        NOTE: For production, use migrations with partitioned history/usage tables.
        """
        logger.info("Initializing prompt catalog tables...")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Prompt catalog tables ready.")

    async def ping(self) -> bool:
        """Round-trip a trivial query; used by the health endpoint."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def close(self) -> None:
        """Dispose the engine and release all connections."""
        logger.info("Closing prompt catalog database connections...")
        await self.engine.dispose()
