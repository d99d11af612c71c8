"""
Rescan Backend — Database Handle
=================================

What:  Async SQLAlchemy engine, session factory and transaction scope.
How:   `Database` is constructed once by the app factory and stored on
       `app.state.database`; nothing in the package holds a module-level
       engine. Every unit of work runs inside `Database.transaction()`,
       which commits on success and rolls back on any error or cancellation.

SQLite specifics:
    - pysqlite/aiosqlite emit their own BEGIN lazily and break SAVEPOINT
      handling, so the driver's transaction management is switched off
      (isolation_level=None) and SQLAlchemy emits the BEGIN itself.
    - Every transaction starts with BEGIN IMMEDIATE: the write lock is taken
      up front, so two concurrent ledger writes queue on the lock (waiting
      up to `sqlite_busy_timeout`) instead of failing on upgrade.
    - Foreign keys are enforced per connection with PRAGMA foreign_keys=ON.

Client-server databases (postgresql+asyncpg) get the pooled engine
configuration instead.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from rescan.config import Settings
from rescan.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares one metadata object between `Database.create_schema()` and Alembic.
    """
    pass


class Database:
    """
    Owns the engine and session factory for one ledger database.

    Lifecycle:
        database = Database.from_settings(settings)   # app factory
        await database.create_schema()                # lifespan startup
        async with database.transaction() as session: # each unit of work
            ...
        await database.dispose()                      # lifespan shutdown
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_pre_ping: bool = True,
        busy_timeout: float = 5.0,
    ):
        self.url = make_url(url)
        self.is_sqlite = self.url.get_backend_name() == "sqlite"

        engine_options = {"echo": echo}
        if self.is_sqlite:
            # sqlite3 "timeout" is the busy timeout in seconds
            engine_options["connect_args"] = {"timeout": busy_timeout}
        else:
            engine_options.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=pool_pre_ping,
                pool_recycle=3600,
            )

        self.engine: AsyncEngine = create_async_engine(url, **engine_options)
        if self.is_sqlite:
            self._install_sqlite_hooks()

        # expire_on_commit=False: returned ORM objects stay readable after the
        # transaction that produced them has committed and closed.
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "Database":
        return cls(
            app_settings.database_url,
            echo=app_settings.log_level == "DEBUG",
            pool_size=app_settings.db_pool_size,
            max_overflow=app_settings.db_max_overflow,
            pool_pre_ping=app_settings.db_pool_pre_ping,
            busy_timeout=app_settings.sqlite_busy_timeout,
        )

    def _install_sqlite_hooks(self) -> None:
        sync_engine = self.engine.sync_engine

        @event.listens_for(sync_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(sync_engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    @property
    def sqlite_path(self) -> Optional[Path]:
        """Filesystem path of a file-backed SQLite database, else None."""
        if not self.is_sqlite:
            return None
        database = self.url.database
        if not database or database == ":memory:" or database.startswith("file:"):
            return None
        return Path(database)

    def prepare_storage(self) -> None:
        """Creates the parent directory of a file-backed SQLite database."""
        path = self.sqlite_path
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Yields a session inside one database transaction.

        Commits when the block exits normally. Any exception (including
        cancellation by a timeout) rolls the whole transaction back.
        Driver and SQL errors are logged and surfaced as
        StorageUnavailableError; application errors propagate unchanged.
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except SQLAlchemyError as e:
                logger.error(
                    "Ledger transaction failed: %s: %s",
                    type(e).__name__,
                    str(e),
                )
                raise StorageUnavailableError(
                    context={"error_type": type(e).__name__},
                ) from e

    async def create_schema(self) -> None:
        """Creates all tables that do not exist yet."""
        # Registers the ORM models on Base.metadata
        from rescan import models  # noqa: F401

        self.prepare_storage()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready (%s)", self.url.get_backend_name())

    async def ping(self) -> bool:
        """Runs SELECT 1; returns False when the database is unreachable."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Database ping failed: %s", str(e))
            return False

    async def dispose(self) -> None:
        """Closes all pooled connections."""
        await self.engine.dispose()
