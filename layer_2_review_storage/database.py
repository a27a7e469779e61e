"""
SQLAlchemy base configuration, engine management and schema initialization
"""
from typing import Any

from sqlalchemy import MetaData, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config.settings import settings
from utils.logger import get_logger

logger = get_logger(__name__)

# Constraint names stay identical across SQLite and PostgreSQL, so a
# StorageError can report which one was violated
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata_obj = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """Base class for all table models"""

    metadata = metadata_obj


def create_database_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create an async engine

    Args:
        database_url: Connection string, defaults to settings.DATABASE_URL.
                      Supports sqlite+aiosqlite:///path and postgresql+asyncpg://...

    Returns:
        Async SQLAlchemy engine
    """
    url = database_url or settings.DATABASE_URL
    engine = create_async_engine(url, echo=False, future=True)

    # SQLite ignores foreign keys unless asked on every connection
    if url.startswith("sqlite"):

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, connection_record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_database(engine: AsyncEngine) -> None:
    """
    Create all tables

    Safe to call multiple times, only missing tables are created.
    """
    # Registers the models with Base.metadata
    from layer_2_review_storage import db_models as _db_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized")


def upsert_insert(dialect_name: str, model):
    """INSERT statement that supports on_conflict_do_update for the given dialect"""
    if dialect_name == "postgresql":
        return postgresql.insert(model)
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported for dialect {dialect_name!r}")
