"""Wall clock in the configured scheduling timezone.

Every "is it time yet" comparison (today's date, meeting end times,
due dates) goes through a Clock so the engines never call
``datetime.now()`` directly and tests can pin the time.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    @property
    def tz(self) -> ZoneInfo: ...
    def now(self) -> datetime: ...


class SystemClock:
    def __init__(self, tz: str | ZoneInfo) -> None:
        self._tz = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


def today(clock: Clock) -> date:
    return clock.now().date()


def local_time(clock: Clock) -> time:
    return clock.now().time().replace(tzinfo=None)


def make_clock(tz: str | ZoneInfo) -> SystemClock:
    return SystemClock(tz)
