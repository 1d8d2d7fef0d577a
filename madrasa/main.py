from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from madrasa.api.health import router as health_router
from madrasa.api.metrics_endpoint import router as metrics_router
from madrasa.api.scheduler import router as scheduler_router
from madrasa.core.clock import make_clock
from madrasa.core.config import SETTINGS
from madrasa.core.logging import setup_logging
from madrasa.db.engine import lifespan_db
from madrasa.db.redis import lifespan_redis
from madrasa.middleware.metrics import MetricsMiddleware
from madrasa.middleware.request_context import (
    RequestContextMiddleware,
    install_request_filter,
)
from madrasa.repos.store import build_store
from madrasa.services.run_history import build_run_history
from madrasa.services.scheduler import SHUTDOWN_TIMEOUT_SECONDS, Scheduler

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_request_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order: scheduler, Redis, DB.
    async with lifespan_db():
        async with lifespan_redis():
            store = build_store()
            scheduler = Scheduler(
                store,
                make_clock(SETTINGS.timezone),
                history=build_run_history(),
            )
            app.state.store = store
            app.state.scheduler = scheduler
            if SETTINGS.scheduler_autostart:
                await scheduler.start()
            try:
                yield
            finally:
                await scheduler.stop(timeout=SHUTDOWN_TIMEOUT_SECONDS)


app = FastAPI(
    title="madrasa-scheduler",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Last-added runs first: RequestContext → Metrics → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(scheduler_router)

logger.info(
    "madrasa-scheduler api  env=%s log_level=%s port=%d timezone=%s autostart=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.timezone,
    "on" if SETTINGS.scheduler_autostart else "off",
)
