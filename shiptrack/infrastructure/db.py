"""Database engine and session management."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ..core_settings import get_settings
from ..domain.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Async engine plus session factory, opened once per process."""

    def __init__(self, database_url: str, echo: bool = False):
        """
        Args:
            database_url: SQLAlchemy async URL (asyncpg or aiosqlite)
            echo: Whether to echo SQL statements
        """
        self.url = database_url
        if database_url.startswith("sqlite"):
            # aiosqlite connections are tied to the loop that opened them
            engine_kwargs = {"poolclass": NullPool}
        else:
            engine_kwargs = {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}
        self.engine = create_async_engine(database_url, echo=echo, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Read session; nothing is committed."""
        async with self.session_factory() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session wrapped in one transaction: commit on success, roll back on any error."""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def drop_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Database tables dropped")

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self):
        await self.engine.dispose()
        logger.info("Database connections closed")


settings = get_settings()
database = Database(settings.database_url, echo=settings.SQL_ECHO)


def get_database() -> Database:
    return database
