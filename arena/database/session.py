"""
Async engine and session management.

`Database` owns one async engine and its session factory. Every component
that touches storage receives the same `Database` and opens short-lived
sessions through `Database.session()`.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from arena.database.base import Base

logger = logging.getLogger(__name__)


class Database:
    """Async engine plus session factory."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine: AsyncEngine = create_async_engine(database_url, echo=echo)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Yield a session that is rolled back on error and always closed.

        Usage:
            async with db.session() as session:
                async with session.begin():
                    ...
        """
        session = self.session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create every table that does not exist yet."""
        # Register models on Base.metadata
        import arena.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database schema ready ({self.engine.url.render_as_string()})")

    async def dispose(self) -> None:
        await self.engine.dispose()


def create_database(database_url: str, echo: bool = False) -> Database:
    """Build a Database, creating the parent directory of a SQLite file."""
    if database_url.startswith("sqlite") and ":///" in database_url:
        db_path = database_url.split(":///", 1)[1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return Database(database_url, echo=echo)
