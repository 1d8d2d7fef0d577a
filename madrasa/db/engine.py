"""Async SQLAlchemy engine and session factory.

When DATABASE_URL is configured, provides:
- async engine for PostgreSQL via asyncpg
- async session factory used by the PgStore unit of work
- lifespan hook for startup/shutdown

When DATABASE_URL is None, all exports are None and the scheduler runs
against the in-memory store (tests, local demos).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from madrasa.core.config import SETTINGS

logger = logging.getLogger(__name__)

# Bound on any single statement; ticks never hold a connection longer.
STATEMENT_TIMEOUT_MS = 30_000


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


if SETTINGS.database_url:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={
            "timeout": 10,
            "server_settings": {
                "statement_timeout": str(STATEMENT_TIMEOUT_MS),
                "timezone": SETTINGS.timezone,
            },
        },
    )
    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
else:
    engine = None
    async_session_factory = None


@asynccontextmanager
async def lifespan_db():
    """Startup/shutdown hook for the database engine."""
    if engine is None:
        logger.info("No DATABASE_URL configured; using the in-memory store")
        yield
        return

    logger.info("Database engine created: %s", engine.url.render_as_string())
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
