from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from madrasa.main import app
from madrasa.repos.unit_of_work import InMemoryStore
from madrasa.services.scheduler import SHUTDOWN_TIMEOUT_SECONDS, Scheduler

CRON_SECRET = "test-cron-secret"


def test_routes_are_mounted(client: TestClient) -> None:
    # The schema lists every route, however the routers are nested.
    paths = set(app.openapi()["paths"])
    assert {
        "/health",
        "/ready",
        "/v1/scheduler/status",
        "/v1/scheduler/start",
        "/v1/scheduler/stop",
        "/v1/scheduler/jobs/{job}/run",
    } <= paths
    # /metrics is left out of the schema
    assert client.get("/metrics").status_code == 200


def test_lifespan_wires_store_and_scheduler(client: TestClient) -> None:
    assert isinstance(client.app.state.store, InMemoryStore)  # type: ignore[attr-defined]
    scheduler = client.app.state.scheduler  # type: ignore[attr-defined]
    assert isinstance(scheduler, Scheduler)
    # Autostart is off under test
    assert scheduler.running is False


def test_shutdown_bounds_the_wait_for_in_flight_ticks(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    seen: list[dict] = []
    real_stop = Scheduler.stop

    async def spy_stop(self: Scheduler, **kwargs) -> dict:
        seen.append(kwargs)
        return await real_stop(self, **kwargs)

    monkeypatch.setattr(Scheduler, "stop", spy_stop)
    with TestClient(app):
        pass

    assert seen == [{"timeout": SHUTDOWN_TIMEOUT_SECONDS}]


def test_each_lifespan_starts_with_empty_run_history() -> None:
    headers = {"X-Cron-Secret": CRON_SECRET}
    with TestClient(app) as first:
        first.post("/v1/scheduler/jobs/auto-launch/run", headers=headers)
        jobs = {j["name"]: j for j in first.get("/v1/scheduler/status").json()["jobs"]}
        assert jobs["auto-launch"]["last_run"] is not None

    with TestClient(app) as second:
        jobs = {j["name"]: j for j in second.get("/v1/scheduler/status").json()["jobs"]}
        assert jobs["auto-launch"]["last_run"] is None


def test_docs_hidden_outside_dev() -> None:
    assert app.docs_url is None
