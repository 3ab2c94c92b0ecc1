"""
Database layer — async SQLAlchemy 2.0 (aiosqlite or asyncpg).

Provides:
    • Async engine and session factory built from settings
    • ORM base for the subscriber and history tables
    • Table creation / engine disposal for the app lifespan

SQLite is the default so a single bot host needs no database server;
point DATABASE_URL at ``postgresql+asyncpg://...`` for PostgreSQL.

Usage:
    from alert_relay.core.database import Base, build_engine, build_session_factory

    engine = build_engine("sqlite+aiosqlite:///:memory:")
    sessions = build_session_factory(engine)
    await init_db(engine)
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from alert_relay.core.config import settings

logger = logging.getLogger(__name__)


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


# ── Engine ──
def build_engine(url: Optional[str] = None, *, echo: Optional[bool] = None) -> AsyncEngine:
    """
    Create an async engine for ``url`` (defaults to settings.DATABASE_URL).

    In-memory SQLite gets a StaticPool so every session sees the same
    database; other SQLite files skip pool sizing, which they don't support.
    """
    url = url or settings.DATABASE_URL
    echo = settings.DATABASE_ECHO if echo is None else echo

    if url.startswith("sqlite"):
        if ":memory:" in url:
            return create_async_engine(
                url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_async_engine(url, echo=echo)

    return create_async_engine(
        url,
        pool_size=settings.DATABASE_POOL_SIZE,
        echo=echo,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Lifecycle ──
async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (idempotent)."""
    # Import for side effect: registers the tables on Base.metadata
    from alert_relay.storage import tables  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised (%s)", _redact(str(engine.url)))


async def ping_db(engine: AsyncEngine) -> None:
    """Round-trip a trivial query; raises on failure."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db(engine: AsyncEngine) -> None:
    """Dispose engine connections."""
    await engine.dispose()
    logger.info("Database connections closed")


def _redact(url: str) -> str:
    return url.split("@")[-1]
