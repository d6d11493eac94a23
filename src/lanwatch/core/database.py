"""Database connection and session management."""

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)

# Seconds a connection waits on a locked SQLite database before failing
SQLITE_BUSY_TIMEOUT = 30

# Execution option naming the SQLite BEGIN mode of a transaction
SQLITE_BEGIN_OPTION = "sqlite_begin"

# Session.connection() options for a read-modify-write transaction; the
# write lock is taken at BEGIN, before the first read
WRITE_TRANSACTION: dict[str, Any] = {SQLITE_BEGIN_OPTION: "IMMEDIATE"}


def _install_sqlite_transactions(engine: AsyncEngine) -> None:
    """Let SQLAlchemy, not the driver, emit BEGIN on SQLite connections.

    The driver defers BEGIN until the first write, so reads that precede it
    see no transaction at all. With the driver's handling disabled every
    transaction starts with an explicit BEGIN, in the mode requested
    through ``SQLITE_BEGIN_OPTION`` (DEFERRED by default).
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn: Connection) -> None:
        options = conn.get_execution_options()
        if options.get("isolation_level") == "AUTOCOMMIT":
            return
        conn.exec_driver_sql(f"BEGIN {options.get(SQLITE_BEGIN_OPTION, 'DEFERRED')}")


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite connections get a busy timeout."""
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args = {"timeout": SQLITE_BUSY_TIMEOUT, "check_same_thread": False}
    engine = create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )
    if engine.dialect.name == "sqlite":
        _install_sqlite_transactions(engine)
    return engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory used by every service."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(bind: AsyncEngine) -> None:
    """Initialize database schema from the models."""
    # Import here to avoid circular imports
    from lanwatch.models import Base

    logger.info("Initializing database schema from models...")
    async with bind.begin() as conn:
        await conn.run_sync(
            lambda sync_conn: Base.metadata.create_all(sync_conn, checkfirst=True)
        )
    logger.info("Database schema initialized")
