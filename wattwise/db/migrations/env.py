"""
Alembic environment for the WattWise usage tables.

Migrations run against the same DATABASE_URL and async engine factory as
the application (``wattwise.db.session.create_engine``), so PostgreSQL
(asyncpg) and SQLite (aiosqlite) deployments migrate the same way. On
SQLite, batch mode is enabled because ALTER TABLE support is limited.

Offline mode (``alembic upgrade --sql``) renders the raw, rollup and
index DDL for review without connecting.

CHANGELOG:
- 2026-10-18: Reuse the application engine factory; batch mode on SQLite
- 2026-10-18: Initial creation

TODO:
- None
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection

from wattwise.config import get_settings
from wattwise.db.models import Base
from wattwise.db.session import create_engine

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline() -> None:
    """Emit the migration SQL for the configured DATABASE_URL."""
    url = get_settings().DATABASE_URL
    _configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=url.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection: Connection) -> None:
    _configure(
        connection=connection,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations over the application's async engine."""
    engine = create_engine()
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
