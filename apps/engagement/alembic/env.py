from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from studio_engagement.core.settings import settings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def get_metadata():
    from studio_engagement import models  # noqa: F401 (registers tables)
    from studio_engagement.db.base import Base

    return Base.metadata


def _sync_url(database_url: str) -> str:
    if database_url.startswith("postgresql+asyncpg"):
        return database_url.replace("postgresql+asyncpg", "postgresql")
    if "+aiosqlite" in database_url:
        return database_url.replace("+aiosqlite", "")
    return database_url


def run_migrations_offline():
    """Run migrations in 'offline' mode."""
    context.configure(url=_sync_url(settings.database_url), target_metadata=get_metadata(), literal_binds=True)

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations in 'online' mode with a sync driver."""
    connectable = create_engine(_sync_url(settings.database_url), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=get_metadata())

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
