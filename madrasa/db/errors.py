"""Classification of store errors.

Ticks treat two kinds of failures differently:

  transient: the connection broke, the server was unreachable, or a
             statement hit the server-side timeout.  The transaction is
             already rolled back; the tick stops and the next tick
             retries the same work.

  anything else: a bug or a data problem in one entity.  The engine
             logs it with a traceback and moves on to the next entity.

SQLAlchemy wraps driver errors (``DBAPIError.orig``) and asyncpg chains
its own, so classification walks the whole cause chain.
"""

from __future__ import annotations

import errno
import logging
import socket
from collections.abc import Iterator

import asyncpg
from sqlalchemy import exc as sa_exc

CONNECTION_RESET = "connection_reset"
TIMEOUT = "timeout"
HOST_UNREACHABLE = "host_unreachable"
CONNECTION_LOST = "connection_lost"

_MESSAGES = {
    CONNECTION_RESET: "database connection was reset by the server",
    TIMEOUT: "database operation timed out",
    HOST_UNREACHABLE: "database host could not be resolved or reached",
    CONNECTION_LOST: "database connection was lost",
}

_UNREACHABLE_ERRNOS = {
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
    errno.ECONNREFUSED,
}


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    stack: list[object] = [exc]
    while stack:
        current = stack.pop()
        if not isinstance(current, BaseException) or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.extend(
            [getattr(current, "orig", None), current.__cause__, current.__context__]
        )


def _kind_of(exc: BaseException) -> str | None:
    if isinstance(exc, ConnectionResetError):
        return CONNECTION_RESET
    if isinstance(
        exc,
        TimeoutError | sa_exc.TimeoutError | asyncpg.exceptions.QueryCanceledError,
    ):
        return TIMEOUT
    if isinstance(exc, socket.gaierror):
        return HOST_UNREACHABLE
    if isinstance(exc, OSError) and exc.errno in _UNREACHABLE_ERRNOS:
        return HOST_UNREACHABLE
    if isinstance(
        exc,
        asyncpg.exceptions.ConnectionDoesNotExistError
        | asyncpg.exceptions.PostgresConnectionError
        | asyncpg.exceptions.CannotConnectNowError,
    ):
        return CONNECTION_LOST
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return CONNECTION_LOST
    return None


def classify_store_error(exc: BaseException) -> str | None:
    """Return the transient error kind, or None for non-transient errors."""
    for link in _chain(exc):
        kind = _kind_of(link)
        if kind is not None:
            return kind
    return None


def is_transient(exc: BaseException) -> bool:
    return classify_store_error(exc) is not None


def describe_store_error(exc: BaseException) -> str:
    """One-line diagnostic for the logs."""
    kind = classify_store_error(exc)
    if kind is not None:
        return f"{_MESSAGES[kind]} ({type(exc).__name__})"
    return f"database error: {type(exc).__name__}: {exc}"


def log_store_failure(logger: logging.Logger, action: str, exc: BaseException) -> str:
    """Log a failed store operation and return its diagnostic.

    Transient failures get one line (the next tick retries); anything
    else keeps its traceback.
    """
    message = describe_store_error(exc)
    if is_transient(exc):
        logger.error("%s failed: %s; retrying on the next tick", action, message)
    else:
        logger.error("%s failed: %s", action, message, exc_info=exc)
    return message
