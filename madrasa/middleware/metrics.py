"""Prometheus metrics middleware for the control API.

For each request: ACTIVE_REQUESTS goes up for its duration, then
REQUEST_COUNT (method/endpoint/status) and REQUEST_DURATION are recorded.
The endpoint label is the URL path.  Job names are a fixed set, so
/v1/scheduler/jobs/{job}/run stays low-cardinality; unknown job names
are folded into one label value.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from madrasa.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION

_JOB_RUN_PREFIX = "/v1/scheduler/jobs/"


def _endpoint_label(path: str, status_code: str) -> str:
    if path.startswith(_JOB_RUN_PREFIX) and status_code == "404":
        return _JOB_RUN_PREFIX + "{job}/run"
    return path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect Prometheus metrics for every HTTP request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Scrapes would otherwise dominate the request count.
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start = time.monotonic()
        status_code: str | None = None

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        except Exception:
            status_code = "500"
            raise
        finally:
            duration = time.monotonic() - start
            ACTIVE_REQUESTS.dec()
            status_label = status_code if status_code is not None else "500"
            endpoint = _endpoint_label(request.url.path, status_label)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_label,
            ).inc()
            REQUEST_DURATION.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(duration)

        return response
