from __future__ import annotations

import logging

from madrasa.core.config import SETTINGS
from madrasa.db.engine import async_session_factory
from madrasa.repos.pg_unit_of_work import PgStore
from madrasa.repos.unit_of_work import InMemoryStore, Store

logger = logging.getLogger(__name__)


def build_store() -> Store:
    """PgStore when DATABASE_URL is configured, otherwise in-memory."""
    if async_session_factory is not None:
        return PgStore(async_session_factory, SETTINGS.timezone)
    logger.warning("Scheduler is running against the in-memory store")
    return InMemoryStore(tz=SETTINGS.timezone)
