"""
Async engine, session factory and declarative Base
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from settings import DatabaseSettings

Base = declarative_base()

# Заполняются в init_db()
engine: Optional[AsyncEngine] = None
SessionLocal: Optional[async_sessionmaker] = None


def _register_models():
    # Модели должны быть в Base.metadata до create_all / alembic autogenerate
    from db import models  # noqa: F401


_register_models()


def init_db(database_settings: DatabaseSettings) -> AsyncEngine:
    """
    Create the engine and the session factory

    Pool options are passed only for server databases; SQLite (tests, local
    runs via DB_URL_OVERRIDE) uses the driver's default pool.
    """
    global engine, SessionLocal

    options = {"echo": database_settings.echo}
    if not database_settings.is_sqlite:
        options.update(
            pool_size=database_settings.pool_size,
            max_overflow=database_settings.max_overflow,
            pool_timeout=database_settings.pool_timeout,
            pool_pre_ping=True,
        )

    engine = create_async_engine(database_settings.async_url, **options)
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine


async def close_db():
    """Dispose the engine on shutdown"""
    global engine, SessionLocal
    if engine is not None:
        await engine.dispose()
    engine = None
    SessionLocal = None


async def get_db():
    """Одна AsyncSession на запрос"""
    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with SessionLocal() as session:
        yield session
