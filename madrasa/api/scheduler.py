"""Scheduler control endpoints.

- GET  /v1/scheduler/status           running state, per-job schedule,
                                      next fire time, last run (open)
- POST /v1/scheduler/start            start the clock (idempotent)
- POST /v1/scheduler/stop             stop the clock; in-flight ticks finish
- POST /v1/scheduler/jobs/{job}/run   run one tick now, return its report

Mutating routes require the X-Cron-Secret header.  "Run now" is how an
external cron (or an operator) drives the engines without the in-process
clock; it goes through exactly the same engine code.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from madrasa.api.dependencies import get_scheduler, require_cron_secret
from madrasa.services.errors import UnknownJobError
from madrasa.services.scheduler import Scheduler

router = APIRouter(prefix="/v1/scheduler", tags=["scheduler"])

SchedulerDep = Annotated[Scheduler, Depends(get_scheduler)]


class JobStatusOut(BaseModel):
    name: str
    schedule: str
    next_run_at: str | None
    in_flight: bool
    last_run: dict | None


class SchedulerStatusOut(BaseModel):
    running: bool
    started_at: str | None
    uptime_seconds: float | None
    timezone: str
    jobs: list[JobStatusOut]


class LifecycleOut(BaseModel):
    status: str
    changed: bool


class TickReportOut(BaseModel):
    job: str
    outcome: str
    started_at: str
    finished_at: str
    duration_seconds: float
    counts: dict[str, int]
    error: str | None


@router.get("/status", response_model=SchedulerStatusOut)
async def scheduler_status(scheduler: SchedulerDep) -> SchedulerStatusOut:
    return SchedulerStatusOut(**await scheduler.status())


@router.post(
    "/start",
    response_model=LifecycleOut,
    dependencies=[Depends(require_cron_secret)],
)
async def start_scheduler(scheduler: SchedulerDep) -> LifecycleOut:
    result = await scheduler.start()
    return LifecycleOut(status=result["status"], changed=result["started"])


@router.post(
    "/stop",
    response_model=LifecycleOut,
    dependencies=[Depends(require_cron_secret)],
)
async def stop_scheduler(scheduler: SchedulerDep) -> LifecycleOut:
    result = await scheduler.stop()
    return LifecycleOut(status=result["status"], changed=result["stopped"])


@router.post(
    "/jobs/{job}/run",
    response_model=TickReportOut,
    dependencies=[Depends(require_cron_secret)],
)
async def run_job(job: str, scheduler: SchedulerDep) -> TickReportOut:
    try:
        report = await scheduler.run_job(job)
    except UnknownJobError:
        raise HTTPException(status_code=404, detail=f"unknown job {job!r}") from None
    return TickReportOut(**report.to_json())
