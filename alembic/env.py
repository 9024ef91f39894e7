"""Alembic environment for the copy-trading ledger.

Migrations run through the same async engine factory the application uses, so
`postgresql://` URLs are upgraded to asyncpg and local `sqlite+aiosqlite`
ledgers migrate in batch mode.
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from pydantic import ValidationError
from sqlalchemy import pool
from sqlalchemy.engine import Connection

from polymarket_copytrader.config import get_settings
from polymarket_copytrader.storage.database import create_async_db_engine
from polymarket_copytrader.storage.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _ledger_url() -> str:
    """Resolve the ledger URL: explicit override, then app settings, then alembic.ini."""
    override = os.environ.get("SQLALCHEMY_DATABASE_URL")
    if override:
        return os.path.expandvars(override)
    try:
        return get_settings().database.url
    except ValidationError:
        # DATABASE_URL unset; fall back to the ini default.
        return config.get_main_option("sqlalchemy.url") or ""


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    url = _ledger_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=_is_sqlite(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def _apply(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def _migrate_ledger() -> None:
    engine = create_async_db_engine(_ledger_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_apply)
    finally:
        await engine.dispose()


def run_migrations_online() -> None:
    """Apply migrations against the live ledger database."""
    asyncio.run(_migrate_ledger())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
