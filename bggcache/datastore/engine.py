"""
Database engine configuration and lifecycle.
Uses the SQLAlchemy async engine over SQLite (aiosqlite).
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from loguru import logger
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bggcache.datastore.models import Base
from bggcache.services.errors import StoreError
from bggcache.settings import global_settings

# Global engine instance
engine = None
AsyncSessionLocal = None


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database:
        return
    if url.database == ":memory:":
        return
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def init_db(database_url: str | None = None) -> None:
    """Create the engine, the session factory and all tables."""
    global engine, AsyncSessionLocal

    database_url = database_url or global_settings.database_url
    _ensure_sqlite_dir(database_url)

    engine = create_async_engine(
        database_url,
        echo=global_settings.database_echo,
        future=True,
    )
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_foreign_keys)

    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.debug(f"Database ready at {database_url}")


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional scope: commit on success, roll back everything on failure.

    SQLAlchemy errors are re-raised as StoreError so callers see one
    persistence failure type; other exceptions propagate unchanged.
    """
    factory = session_factory or get_session_factory()

    async with factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Store operation failed, rolled back: {e}")
            raise StoreError(str(e)) from e
        except BaseException:
            await session.rollback()
            raise


async def close_db() -> None:
    """Dispose of the engine and forget the session factory."""
    global engine, AsyncSessionLocal
    if engine:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for components that open their own sessions."""
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return AsyncSessionLocal
