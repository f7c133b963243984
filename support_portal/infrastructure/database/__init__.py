"""
Database Infrastructure
=======================

Engine and session lifecycle for the portal's relational store.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) is accepted for
local runs and the persistence tests. Snapshot columns rely on guarded
``UPDATE ... WHERE`` statements, so every session here runs with
``autoflush`` off and commits once per unit of work.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from support_portal.config import settings


class Base(DeclarativeBase):
    """Declarative base shared by every portal table."""


_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.debug}
    if url.startswith("postgresql"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return options


def _normalise_url(url: str) -> str:
    # asyncpg takes ssl=, not sslmode=
    if url.startswith("postgresql+asyncpg"):
        return url.replace("sslmode=", "ssl=")
    return url


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the engine and session factory.

    Called once from the application lifespan. Calling it again replaces
    the previous engine without disposing it; use ``close_database`` first.
    """
    global _engine, _session_maker

    url = _normalise_url(database_url or settings.database_url)
    _engine = create_async_engine(url, **_engine_options(url))
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


async def close_database() -> None:
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


@asynccontextmanager
async def get_session_context() -> AsyncIterator[AsyncSession]:
    """
    One unit of work: commit on success, roll back on any error.

    Used directly by the SLA sweep and wrapped by ``get_session`` for
    request handlers.
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_maker() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""
    async with get_session_context() as session:
        yield session


async def create_tables() -> None:
    """
    Create missing tables.

    Development convenience; deployed databases are migrated separately.
    """
    from support_portal.tickets.infrastructure import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
