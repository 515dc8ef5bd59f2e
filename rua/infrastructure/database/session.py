"""Async engine, session lifecycle and the database health probe.

One engine (and one connection pool) is shared by the whole process. It is
created lazily on first use and disposed at shutdown. When SQL logging is
enabled, cursor events time every statement and slow ones are logged with
sanitized parameters and the request's correlation id.
"""

import threading
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from weakref import WeakKeyDictionary

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.engine.interfaces import DBAPICursor, ExecutionContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rua.core.config import get_settings
from rua.core.constants import MILLISECONDS_PER_SECOND
from rua.core.context import RequestContext
from rua.core.error_context import sanitize_sql_params
from rua.infrastructure.constants import (
    COMMAND_TIMEOUT_SECONDS,
    MAX_LOGGED_STATEMENT_LENGTH,
    POOL_RECYCLE_SECONDS,
)

type QueryParameters = dict[str, Any] | list[Any] | tuple[Any, ...] | None

_query_start_times: WeakKeyDictionary[ExecutionContext, float] = WeakKeyDictionary()


def _before_cursor_execute(
    _conn: Connection,
    _cursor: DBAPICursor,
    _statement: str,
    _parameters: QueryParameters,
    context: ExecutionContext,
    _executemany: bool,
) -> None:
    """Record when a statement started."""
    _query_start_times[context] = time.perf_counter()


def _after_cursor_execute(
    _conn: Connection,
    cursor: DBAPICursor,
    statement: str,
    parameters: QueryParameters,
    context: ExecutionContext,
    executemany: bool,
) -> None:
    """Log the statement if it ran longer than the slow query threshold."""
    start = _query_start_times.pop(context, None)
    if start is None:
        return

    duration_ms = (time.perf_counter() - start) * MILLISECONDS_PER_SECOND
    threshold_ms = get_settings().log_config.slow_query_threshold_ms
    if duration_ms < threshold_ms:
        return

    rowcount = getattr(cursor, "rowcount", None)
    logger.warning(
        "Slow query detected ({:.2f}ms)",
        duration_ms,
        query=" ".join(statement.split())[:MAX_LOGGED_STATEMENT_LENGTH],
        duration_ms=round(duration_ms, 2),
        rows_affected=rowcount if rowcount is not None else -1,
        parameters=sanitize_sql_params(parameters),
        correlation_id=RequestContext.get_correlation_id(),
        executemany=executemany,
        threshold_ms=threshold_ms,
    )


def create_database_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the async engine from the database configuration.

    Args:
        database_url: Overrides the configured URL when given.

    Returns:
        AsyncEngine: The configured engine.
    """
    settings = get_settings()
    db_config = settings.database_config

    engine = create_async_engine(
        database_url or db_config.database_url,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=db_config.pool_pre_ping,
        pool_recycle=POOL_RECYCLE_SECONDS,
        echo=db_config.echo,
        connect_args={
            "server_settings": {"jit": "off"},
            "command_timeout": COMMAND_TIMEOUT_SECONDS,
        },
    )

    if settings.log_config.enable_sql_logging:
        event.listen(
            engine.sync_engine, "before_cursor_execute", _before_cursor_execute
        )
        event.listen(
            engine.sync_engine, "after_cursor_execute", _after_cursor_execute
        )

    logger.info(
        "Created database engine",
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        sql_logging=settings.log_config.enable_sql_logging,
    )
    return engine


class _DatabaseManager:
    """Holds the process-wide engine and session factory."""

    def __init__(self) -> None:
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._lock = threading.Lock()

    def get_engine(self) -> AsyncEngine:
        if self._engine is None:
            with self._lock:
                if self._engine is None:
                    self._engine = create_database_engine()
        return self._engine

    def get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            engine = self.get_engine()
            with self._lock:
                if self._session_factory is None:
                    self._session_factory = async_sessionmaker(
                        engine, class_=AsyncSession, expire_on_commit=False
                    )
        return self._session_factory

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")
        self.reset()

    def reset(self) -> None:
        self._engine = None
        self._session_factory = None


_db_manager = _DatabaseManager()


def get_engine() -> AsyncEngine:
    """Get the process-wide engine, creating it on first use."""
    return _db_manager.get_engine()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory, creating it on first use."""
    return _db_manager.get_session_factory()


def reset_database_state() -> None:
    """Forget the engine without disposing it. Used by the test suite."""
    _db_manager.reset()


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Open a session that commits on success and rolls back on error.

    Yields:
        AsyncSession: The session.

    Raises:
        Exception: Whatever the block raised, after the rollback.

    Example:
        >>> async with get_async_session() as session:
        ...     user = await UserRepository(session).get_by_id(1)
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            logger.debug("Database session rolled back")
            raise


async def close_database() -> None:
    """Dispose the engine and its pooled connections."""
    await _db_manager.close()


async def check_database_connection() -> tuple[bool, str | None]:
    """Run ``SELECT 1`` against the database.

    Returns:
        tuple[bool, str | None]: Whether the database answered, and the
            error text if it did not.
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return False, str(e)
    return True, None
