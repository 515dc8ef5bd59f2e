"""Alembic environment running migrations through the async engine.

The database URL comes from the application settings, never from
alembic.ini, so migrations and the running service always target the same
database.
"""

import asyncio
import logging

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from rua.core.config import get_settings
from rua.infrastructure.database import models  # noqa: F401 - registers tables
from rua.infrastructure.database.base import Base

config = context.config
logger = logging.getLogger("alembic.env")
target_metadata = Base.metadata

COMPARE_OPTIONS = {"compare_type": True, "compare_server_default": True}


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting to a database."""
    logger.info("Running migrations in offline mode")
    context.configure(
        url=get_settings().database_config.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Run the migrations on an open connection."""
    context.configure(
        connection=connection, target_metadata=target_metadata, **COMPARE_OPTIONS
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Connect with a pool-less async engine and run the migrations."""
    db_config = get_settings().database_config
    connectable = async_engine_from_config(
        {
            "sqlalchemy.url": db_config.database_url,
            "sqlalchemy.echo": db_config.echo,
        },
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    logger.info("Running migrations in online mode")
    asyncio.run(run_async_migrations())
