from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from madrasa.core.config import SETTINGS
from madrasa.services.scheduler import Scheduler

logger = logging.getLogger(__name__)


def require_cron_secret(
    x_cron_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Gate HTTP-triggered scheduler operations behind CRON_SECRET.

    With no secret configured every gated call is refused: an unset
    secret must never mean "open".
    """
    expected = SETTINGS.cron_secret
    if not expected:
        logger.warning("Scheduler control refused: CRON_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="scheduler control is disabled",
        )
    if x_cron_secret is None or not hmac.compare_digest(
        x_cron_secret.encode(), expected.encode()
    ):
        logger.warning("Scheduler control refused: bad or missing X-Cron-Secret")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="invalid cron secret",
        )


def get_scheduler(request: Request) -> Scheduler:
    """The Scheduler owned by the app (set up in the lifespan)."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="scheduler is not initialised",
        )
    return scheduler
