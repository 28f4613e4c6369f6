from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import Settings
from .errors import StorageError
from .safe_migrations import apply_safe_migrations

logger = logging.getLogger(__name__)

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores FOREIGN KEY clauses unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_settings(settings: Settings, **kwargs) -> AsyncEngine:
    """
    Build the engine (connection pool) for one application instance.
    No module-level engine: create_app() owns it and keeps it on app.state.
    """
    engine = create_async_engine(
        settings.DB_URL,
        echo=settings.DEBUG,
        future=True,
        **kwargs,
    )
    prepare_engine(engine)
    return engine


def prepare_engine(engine: AsyncEngine) -> AsyncEngine:
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


async def init_db(
    engine: AsyncEngine,
    *,
    seed_catalog: bool = True,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> None:
    """
    Database bootstrap:
    1) create_all() creates missing tables and indexes
    2) safe_migrations adds missing columns and rebuilds derived fields (idempotent)
    3) reference catalog (languages, services, translations) is seeded if absent
    """
    # models must be imported so Base.metadata knows every table
    from .. import models  # noqa: F401
    from .catalogs.service_catalog import seed_catalog as _seed_catalog

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await apply_safe_migrations(conn, engine.dialect.name)

    if seed_catalog:
        factory = session_factory or make_session_factory(engine)
        async with factory() as session:
            await _seed_catalog(session)


@asynccontextmanager
async def storage_errors(db: AsyncSession, message: str) -> AsyncIterator[None]:
    """
    Map storage failures (SQLAlchemy errors, query timeouts) to StorageError.
    The session is rolled back so no partial write survives the request.
    """
    try:
        yield
    except asyncio.TimeoutError as e:
        await db.rollback()
        raise StorageError(message, cause=e) from e
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError(message, cause=e) from e


async def execute_with_timeout(db: AsyncSession, stmt, timeout: Optional[float]):
    if not timeout:
        return await db.execute(stmt)
    return await asyncio.wait_for(db.execute(stmt), timeout=timeout)
