from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from madrasa.api import dependencies
from madrasa.core.config import SETTINGS
from madrasa.repos.unit_of_work import InMemoryStore
from tests.factories import CAIRO, launched_course, pending_task, schedule_entry

# ---- status (open) ----


def test_status_lists_jobs(client: TestClient) -> None:
    resp = client.get("/v1/scheduler/status")
    assert resp.status_code == 200
    data = resp.json()
    assert data["running"] is False
    assert data["timezone"] == SETTINGS.timezone
    names = {job["name"] for job in data["jobs"]}
    assert names == {
        "release-tasks",
        "expire-daily-tasks",
        "deadline-reminders",
        "evaluate-performance",
        "auto-launch",
        "overdue-fixed-tasks",
    }


# ---- secret gate ----


def test_start_requires_secret(client: TestClient) -> None:
    assert client.post("/v1/scheduler/start").status_code == 403


def test_wrong_secret_is_rejected(client: TestClient) -> None:
    resp = client.post("/v1/scheduler/start", headers={"X-Cron-Secret": "guess"})
    assert resp.status_code == 403
    assert client.get("/v1/scheduler/status").json()["running"] is False


def test_unset_secret_rejects_everything(
    client: TestClient,
    cron_headers: dict[str, str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(dependencies, "SETTINGS", replace(SETTINGS, cron_secret=None))
    resp = client.post("/v1/scheduler/jobs/release-tasks/run", headers=cron_headers)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "scheduler control is disabled"


# ---- lifecycle ----


def test_start_then_stop(client: TestClient, cron_headers: dict[str, str]) -> None:
    first = client.post("/v1/scheduler/start", headers=cron_headers)
    assert first.status_code == 200
    assert first.json() == {"status": "running", "changed": True}

    again = client.post("/v1/scheduler/start", headers=cron_headers)
    assert again.json() == {"status": "already running", "changed": False}

    status = client.get("/v1/scheduler/status").json()
    assert status["running"] is True
    assert all(job["next_run_at"] is not None for job in status["jobs"])

    stopped = client.post("/v1/scheduler/stop", headers=cron_headers)
    assert stopped.json() == {"status": "stopped", "changed": True}
    again = client.post("/v1/scheduler/stop", headers=cron_headers)
    assert again.json() == {"status": "not running", "changed": False}


# ---- run now ----


def test_run_job_returns_tick_report(
    client: TestClient,
    app_store: InMemoryStore,
    cron_headers: dict[str, str],
) -> None:
    course = launched_course(datetime.now(CAIRO).date() - timedelta(days=3))
    entry = schedule_entry(course)
    task = pending_task(course, uuid4(), entry)
    app_store.db.put(course, entry, task)

    resp = client.post("/v1/scheduler/jobs/release-tasks/run", headers=cron_headers)

    assert resp.status_code == 200
    report = resp.json()
    assert report["job"] == "release-tasks"
    assert report["outcome"] == "ok"
    assert report["counts"]["released"] == 1
    assert report["error"] is None
    assert app_store.db.tasks[task.id].is_active is True

    status = client.get("/v1/scheduler/status").json()
    last = {j["name"]: j["last_run"] for j in status["jobs"]}["release-tasks"]
    assert last["counts"]["released"] == 1


def test_run_unknown_job_is_404(client: TestClient, cron_headers: dict[str, str]) -> None:
    resp = client.post("/v1/scheduler/jobs/launch-rockets/run", headers=cron_headers)
    assert resp.status_code == 404


def test_run_unknown_job_without_secret_is_403(client: TestClient) -> None:
    assert client.post("/v1/scheduler/jobs/launch-rockets/run").status_code == 403
