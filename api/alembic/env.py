"""
Alembic migration environment for AlertCase.

The connection URL comes from the application settings, so migrations run
against the same database (and the same secret-file password) as the API.
SQLite URLs are migrated in batch mode for local development.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from app.config import get_settings
from app.models import Base
from app.models.base import render_migration_type

target_metadata = Base.metadata

settings = get_settings()
config.set_main_option("sqlalchemy.url", settings.async_database_url)


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        render_item=render_migration_type,
        render_as_batch=settings.is_sqlite,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Emits the SQL for review instead of connecting to the database.
    """
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    _configure(connection=connection, compare_server_default=True)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations over a throwaway NullPool engine."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
