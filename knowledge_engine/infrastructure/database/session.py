"""SQLAlchemy engine and session configuration.

Nothing is created at import time: ``Database`` owns one engine for the
life of the process and is passed explicitly to whoever needs it.
"""

import json
import logging
from pathlib import Path

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from knowledge_engine.domain.ranking import encoded_cosine_similarity
from knowledge_engine.infrastructure.database.base import Base

logger = logging.getLogger(__name__)

SQLITE_COSINE_FUNCTION = "kb_cosine_similarity"


def get_async_url(url: str) -> str:
    """Convert a sync SQLAlchemy URL to an async one."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _dumps_metadata(value) -> str:
    # Non-ASCII keys are stored literally so SQLite JSON paths can address them.
    return json.dumps(value, ensure_ascii=False)


def _register_sqlite_functions(engine: AsyncEngine) -> None:
    """Install the store-side cosine function on every new SQLite connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.create_function(
            SQLITE_COSINE_FUNCTION, 2, encoded_cosine_similarity, deterministic=True
        )


class Database:
    """Process-wide database handle with an explicit lifecycle."""

    def __init__(self, url: str, *, echo: bool = False):
        self._url = get_async_url(url)
        self.engine: AsyncEngine = create_async_engine(
            self._url, echo=echo, future=True, json_serializer=_dumps_metadata
        )
        if self.engine.dialect.name == "sqlite":
            _register_sqlite_functions(self.engine)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def create_all(self) -> None:
        """Create the pgvector extension (PostgreSQL) and all tables."""
        # Import registers the models on Base.metadata
        from knowledge_engine.infrastructure.database import models  # noqa: F401

        self._ensure_sqlite_directory()
        async with self.engine.begin() as conn:
            if self.dialect_name == "postgresql":
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready (%s)", self.dialect_name)

    def _ensure_sqlite_directory(self) -> None:
        database = self.engine.url.database
        if self.dialect_name == "sqlite" and database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.debug("Database engine disposed")
