"""Logging configuration for the scheduler.

TWO FORMATTERS
----------------
  _ContainerFormatter: human-readable, single-line, for local dev and
    for the CLI's append-only log file.

  _JsonFormatter: machine-parseable JSON Lines, for production log
    aggregation.  Set LOG_JSON=true to switch.

JOB CONTEXT
-------------
Every scheduler tick runs with ``job_var`` set to the job name.  The
``_JobContextFilter`` copies it onto each LogRecord, so a line emitted
deep inside a repo still says which job produced it:

  2026-10-19T10:00:00.123+0300 INFO  madrasa.services.release_engine  [release-tasks] released 4 task(s)
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from pathlib import Path

job_var: ContextVar[str] = ContextVar("job", default="-")


class _JobContextFilter(logging.Filter):
    """Inject the running scheduler job name into every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "job"):
            record.job = job_var.get("-")  # type: ignore[attr-defined]
        return True


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - Inside a tick: the job name in brackets before the message
    - WARNING+: appends [filename:lineno] so you can locate the guard clause
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _JOB_FMT = "%(asctime)s %(levelname)-8s %(name)s  [%(job)s] %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        job = getattr(record, "job", "-")
        fmt = self._JOB_FMT if job not in (None, "-") else self._BASE_FMT
        if record.levelno >= logging.WARNING:
            fmt += self._LOC_SUFFIX
        self._style._fmt = fmt
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON formatter, one object per line.

    Context fields injected by the request middleware or the scheduler
    tick wrapper appear as top-level keys.
    """

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "job",
        "outcome",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None and value != "-":
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level_name: str,
    *,
    json_format: bool = False,
    log_file: str | None = None,
) -> None:
    """Configure the root logger.

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: If True, emit JSON lines. If False, human-readable.
        log_file: Optional path of an append-only file that receives the
                  same records as stdout.  Parent directories are created.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)
    formatter: logging.Formatter = (
        _JsonFormatter() if json_format else _ContainerFormatter()
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, mode="a", encoding="utf-8"))

    root = logging.getLogger()
    root.setLevel(level)
    for old in root.handlers:
        old.close()
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(_JobContextFilter())
        root.addHandler(handler)

    # Keep third-party loggers from flooding at DEBUG
    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "httpcore",
        "httpx",
        "sqlalchemy.engine",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
