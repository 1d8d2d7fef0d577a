"""Application metrics using the Prometheus client library.

One inventory of everything the service measures.  Other modules import
specific metrics and increment/observe them at the point of action.

Two families live here:

  HTTP metrics: populated by MetricsMiddleware for the control API.

  Scheduler metrics: populated by the tick wrapper in
  madrasa/services/scheduler.py and by the engines themselves.  A tick
  is one firing of a job; its outcome is "ok", "error" or "skipped"
  (the previous tick of the same job was still running).

Useful queries:
  rate(scheduler_ticks_total{outcome="error"}[1h])
  histogram_quantile(0.95, rate(scheduler_tick_duration_seconds_bucket[1d]))
  increase(task_penalties_applied_total[1d])
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Scheduler metrics
# ---------------------------------------------------------------------------

SCHEDULER_TICKS = Counter(
    "scheduler_ticks_total",
    "Scheduler job ticks by job and outcome",
    ["job", "outcome"],  # outcome: ok | error | skipped
)

SCHEDULER_TICK_DURATION = Histogram(
    "scheduler_tick_duration_seconds",
    "Wall-clock duration of one scheduler tick",
    ["job"],
    # Ticks are batch database work: from a no-op scan up to a full
    # evaluation pass over every enrollment.
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 300.0],
)

SCHEDULER_RUNNING = Gauge(
    "scheduler_running",
    "1 while the scheduler driver is started in this process",
)

# ---------------------------------------------------------------------------
# Engine metrics
# ---------------------------------------------------------------------------

TASKS_RELEASED = Counter(
    "tasks_released_total",
    "Tasks activated by the release engine",
)

PENALTIES_APPLIED = Counter(
    "task_penalties_applied_total",
    "Grade penalties written for missed deadlines",
    ["task_type"],
)

EVALUATIONS_WRITTEN = Counter(
    "performance_evaluations_total",
    "Per-user performance evaluations by outcome",
    ["outcome"],  # ok | error
)

COURSES_LAUNCHED = Counter(
    "courses_auto_launched_total",
    "Courses launched automatically after reaching enrollment thresholds",
)

NOTIFICATIONS_CREATED = Counter(
    "notifications_created_total",
    "Notifications written by the scheduler",
    ["type"],
)
