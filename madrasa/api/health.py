"""Health and readiness endpoints.

  /health (liveness):
    "Is this process alive?"  Always 200 while the process can answer.
    The body says whether dependencies are impaired and how the SLOs
    look from this process's counters.

  /ready (readiness):
    "Can this instance do its work right now?"  503 when the database is
    configured but unreachable: every engine needs it.  Redis only holds
    run history, so it never makes the instance unready.

HEALTH RESPONSE STRUCTURE
---------------------------
  status:    overall health ("ok" or "degraded")
  checks:    per-dependency status (database, redis)
  scheduler: whether the clock is running in this process
  slos:      current SLO compliance from Prometheus metrics

SLO values are per-process approximations: the worker and the API each
see only their own counters, and the counters reset on restart.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response
from prometheus_client import REGISTRY

from madrasa.core.slo import (
    evaluate_availability,
    evaluate_latency,
    evaluate_tick_success,
)
from madrasa.db.errors import describe_store_error
from madrasa.db.redis import redis_pool
from madrasa.models.tick import OUTCOME_ERROR, OUTCOME_OK

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _sum_counter(metric_name: str, label_filter: dict | None = None) -> float:
    """Sum all sample values of a counter across matching label sets.

    Example: _sum_counter("scheduler_ticks_total", {"outcome": "error"})
    sums failed ticks of every job.
    """
    total = 0.0
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name != metric_name:
                continue
            if label_filter and not all(
                sample.labels.get(k) == v for k, v in label_filter.items()
            ):
                continue
            total += sample.value
    return total


async def _check_database(request: Request) -> str:
    store = getattr(request.app.state, "store", None)
    if store is None:
        return "not_configured"
    try:
        await store.ping()
    except Exception as exc:
        logger.warning("Database health check failed: %s", describe_store_error(exc))
        return "degraded"
    return "ok"


@router.get("/health")
async def health(request: Request) -> dict:
    """Liveness probe + dependency status + SLO compliance.

    Returns 200 even when degraded; the status field carries the verdict.
    """
    checks: dict[str, str] = {}
    overall = "ok"

    checks["database"] = await _check_database(request)
    if checks["database"] == "degraded":
        overall = "degraded"

    if redis_pool is not None:
        try:
            await redis_pool.ping()  # type: ignore[misc]
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "degraded"
            overall = "degraded"
    else:
        checks["redis"] = "not_configured"

    total_all = _sum_counter("http_requests_total")
    total_5xx = sum(
        _sum_counter("http_requests_total", {"status_code": str(code)})
        for code in range(500, 512)
    )
    availability_status = evaluate_availability(int(total_all), int(total_5xx))

    # Crude p95: twice the mean, from the histogram's sum and count.
    duration_sum = 0.0
    duration_count = 0.0
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name == "http_request_duration_seconds_sum":
                duration_sum += sample.value
            elif sample.name == "http_request_duration_seconds_count":
                duration_count += sample.value

    if duration_count > 0:
        p95_estimate_ms = (duration_sum / duration_count) * 1000 * 2.0
    else:
        p95_estimate_ms = 0.0
    latency_status = evaluate_latency(p95_estimate_ms)

    ok_ticks = _sum_counter("scheduler_ticks_total", {"outcome": OUTCOME_OK})
    failed_ticks = _sum_counter("scheduler_ticks_total", {"outcome": OUTCOME_ERROR})
    tick_status = evaluate_tick_success(
        int(ok_ticks + failed_ticks), int(failed_ticks)
    )

    slos = {}
    for s in [availability_status, latency_status, tick_status]:
        slos[s.slo.name] = {
            "current": s.current,
            "target": s.slo.target,
            "healthy": s.healthy,
        }

    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": overall,
        "checks": checks,
        "scheduler": {"running": bool(scheduler is not None and scheduler.running)},
        "slos": slos,
    }


@router.get("/ready")
async def ready(request: Request) -> Response:
    """Readiness probe: 503 while a configured database is unreachable."""
    if await _check_database(request) == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
