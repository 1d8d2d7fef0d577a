"""Invariant violations raised inside an engine transaction.

Raising one of these inside ``store.begin()`` rolls the transaction back;
the engine's tick handler then logs it and leaves the entity for the
next tick.
"""

from __future__ import annotations


class SchedulerConflictError(RuntimeError):
    """A guarded update matched no row: another tick got there first."""


class ReleaseConflictError(SchedulerConflictError):
    pass


class LaunchConflictError(SchedulerConflictError):
    pass


class UnknownJobError(KeyError):
    pass


class PerformanceCalculationError(RuntimeError):
    """The store-side performance routine reported an error payload."""
