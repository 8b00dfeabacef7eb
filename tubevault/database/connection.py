"""
Async SQLAlchemy engine and session management.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from ..config import Settings, settings as default_settings
from ..config.logging_config import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for every table."""


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """Owns one engine and its session factory.

    Engine and factory are created lazily on first use and dropped by
    ``close()``, after which the manager can be used again.
    """

    def __init__(self, config: Optional[Settings] = None, url: Optional[str] = None):
        self.settings = config or default_settings
        self.url = url or self.settings.DATABASE_URL
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.url).get_backend_name() == "sqlite"

    @property
    def safe_url(self) -> str:
        return make_url(self.url).render_as_string(hide_password=True)

    def _engine_options(self) -> Dict[str, Any]:
        if not self.is_sqlite:
            return {
                "pool_size": self.settings.DATABASE_POOL_SIZE,
                "max_overflow": self.settings.DATABASE_MAX_OVERFLOW,
                "pool_pre_ping": True,
                "pool_recycle": 3600,
            }

        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        database = make_url(self.url).database
        if database in (None, "", ":memory:"):
            # one shared connection, otherwise each session sees an empty database
            options["poolclass"] = StaticPool
        else:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return options

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            options = self._engine_options()
            self._engine = create_async_engine(
                self.url,
                echo=self.settings.database_config["echo"],
                **options,
            )
            if self.is_sqlite:
                event.listen(self._engine.sync_engine, "connect", _sqlite_pragmas)
            logger.info(
                "Database engine created",
                extra={
                    "database_url": self.safe_url,
                    "pool": options["poolclass"].__name__ if "poolclass" in options else "default",
                }
            )
        return self._engine

    @property
    def sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._sessions is None:
            self._sessions = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=True,
            )
        return self._sessions

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """One transaction: committed when the block exits, rolled back if it raises."""
        async with self.sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        """True when ``SELECT 1`` succeeds."""
        try:
            async with self.get_session() as session:
                return (await session.execute(text("SELECT 1"))).scalar() == 1
        except Exception as e:
            logger.error(f"Database ping failed: {e}", extra={"database_url": self.safe_url})
            return False

    async def create_tables(self) -> None:
        # registers every table on Base.metadata
        from . import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready", extra={"database_url": self.safe_url})

    async def drop_tables(self) -> None:
        from . import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("Database tables dropped", extra={"database_url": self.safe_url})

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None
            logger.info("Database connections closed")
