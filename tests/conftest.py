from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

# Settings are read at import time; pin them before anything imports madrasa.
os.environ["APP_ENV"] = "test"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SCHEDULER_AUTOSTART"] = "false"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("REDIS_URL", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from madrasa.main import app  # noqa: E402
from madrasa.repos.unit_of_work import InMemoryStore  # noqa: E402

# Ensure repo root is on sys.path so `import madrasa` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

CRON_SECRET = "test-cron-secret"


@pytest.fixture
def client() -> Iterator[TestClient]:
    # The context manager runs the lifespan, which owns the Scheduler.
    with TestClient(app) as c:
        yield c


@pytest.fixture
def app_store(client: TestClient) -> InMemoryStore:
    """The in-memory store behind the app's Scheduler."""
    return client.app.state.store  # type: ignore[attr-defined]


@pytest.fixture
def cron_headers() -> dict[str, str]:
    return {"X-Cron-Secret": CRON_SECRET}
