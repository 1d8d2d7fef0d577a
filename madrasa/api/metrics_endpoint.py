"""Prometheus metrics endpoint.

Returns every metric in Prometheus text exposition format, for example:

  # TYPE scheduler_ticks_total counter
  scheduler_ticks_total{job="release-tasks",outcome="ok"} 288.0
  scheduler_ticks_total{job="expire-daily-tasks",outcome="error"} 1.0

Restrict /metrics at the network layer in production; tick counts and
error rates reveal how the service is deployed.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
