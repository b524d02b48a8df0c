"""SQLite engine and session scope shared by the mapping and archive services."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ..orm.base import Base

logger = logging.getLogger(__name__)

MEMORY = ":memory:"

# Both sync directions write mappings concurrently.
_FILE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)


def _apply_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for statement in _FILE_PRAGMAS:
            cursor.execute(statement)
    finally:
        cursor.close()


class DatabaseService:
    """Owns the async engine; hands out transactional sessions."""

    def __init__(self, database_path: str | Path):
        """
        Args:
            database_path: SQLite file (``~`` is expanded, parent directories are
                created) or ``:memory:`` for a private in-process database.
        """
        self.database_path: Optional[Path]
        if str(database_path) == MEMORY:
            self.database_path = None
            # One shared connection, otherwise every checkout sees an empty database.
            self.engine: AsyncEngine = create_async_engine(
                f"sqlite+aiosqlite:///{MEMORY}",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.database_path = Path(database_path).expanduser()
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_async_engine(
                f"sqlite+aiosqlite:///{self.database_path}",
                pool_pre_ping=True,
            )
            event.listen(self.engine.sync_engine, "connect", _apply_pragmas)

        self.async_session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def initialize(self) -> None:
        """Create tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug("Database ready at %s", self.database_path or MEMORY)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Commit on success, roll back and re-raise on any error."""
        async with self.async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        await self.engine.dispose()
