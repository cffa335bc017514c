"""
Alembic environment configuration
"""
import asyncio
import logging
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine
from alembic import context
from dotenv import load_dotenv

project_root = Path(__file__).resolve().parent.parent

# Load environment variables from .env file in project root
env_file_path = project_root / ".env"
if env_file_path.exists():
    load_dotenv(env_file_path, override=False)

# Import settings and models
from settings import DatabaseSettings  # noqa: E402
from db import Base  # noqa: E402
from db import models  # noqa: E402,F401  registers every table on Base.metadata

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

db_settings = DatabaseSettings()
logger.info(
    "database %s (.env %s)",
    "override URL" if db_settings.url_override else f"{db_settings.host}:{db_settings.port}/{db_settings.database}",
    "found" if env_file_path.exists() else "not found",
)

config.set_main_option("sqlalchemy.url", db_settings.url)

# for 'autogenerate' support
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (emit SQL without a DBAPI)."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode through the async engine."""
    connectable = create_async_engine(
        db_settings.async_url,
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
