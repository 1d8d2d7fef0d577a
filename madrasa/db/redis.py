"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured we create a connection
pool, otherwise ``redis_pool`` is None and the scheduler's run history
stays in process memory.

Redis holds only the "last run" record of each job, so that the status
endpoint of any API replica can report what the worker process did.
Losing it on a Redis restart is harmless: the next tick rewrites it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from madrasa.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=10,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, mirroring lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured; run history kept in memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")
        # Degrade rather than crash: the scheduler does not need Redis
        # to do its work, only to share run history.
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
