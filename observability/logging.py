"""Logging for the gateway and workflow runs.

Every record is tagged with the run and workflow step it was emitted under,
so the interleaved output of concurrent runs can be split apart again:

    12:00:01 [INFO] [3f2a.../score-articles#2] agents.scorer: Scoring progress: 5/12

Context lives in context variables. Each run executes in its own asyncio
task, which copies the context, so runs never see each other's tags.

Outputs:
    - Console (text or JSON, LOG_LEVEL)
    - log/tidings.log, rotated by size or at midnight, always at DEBUG
    - HTTP access lines on the 'tidings.access' logger (see server.run_server)

Usage:
    >>> setup_logging(config)
    >>> with run_scope(run_id), step_scope("scrape-articles"):
    ...     logger.info("Scraping started")
"""

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any, Iterator

NO_CONTEXT = "-"
LOG_FILENAME = "tidings.log"

ACCESS_LOGGER_NAME = "tidings.access"
# aiohttp access log: remote, request line, status, body size, seconds
ACCESS_LOG_FORMAT = '%a "%r" %s %b %Tfs'

_run_id: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default=NO_CONTEXT)
_step: contextvars.ContextVar[str] = contextvars.ContextVar("step", default=NO_CONTEXT)
_attempt: contextvars.ContextVar[int] = contextvars.ContextVar("attempt", default=0)

# Attributes every LogRecord has; anything else arrived through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "taskName", "run_id", "step", "attempt", "context",
}

_NOISY_LOGGERS = ("aiohttp", "aiohttp.access", "openai", "httpx", "httpcore", "asyncio")


@contextmanager
def run_scope(run_id: str) -> Iterator[None]:
    """Tag records emitted inside the block with ``run_id``."""
    token = _run_id.set(run_id)
    try:
        yield
    finally:
        _run_id.reset(token)


@contextmanager
def step_scope(step: str) -> Iterator[None]:
    """Tag records emitted inside the block with a workflow step name."""
    step_token = _step.set(step)
    attempt_token = _attempt.set(0)
    try:
        yield
    finally:
        _attempt.reset(attempt_token)
        _step.reset(step_token)


def set_attempt(attempt: int) -> None:
    """Record which attempt of the current step is executing."""
    _attempt.set(attempt)


def current_context() -> dict[str, Any]:
    """Context fields that are currently set."""
    context: dict[str, Any] = {}
    if _run_id.get() != NO_CONTEXT:
        context["run_id"] = _run_id.get()
    if _step.get() != NO_CONTEXT:
        context["step"] = _step.get()
    if _attempt.get():
        context["attempt"] = _attempt.get()
    return context


class ContextFilter(logging.Filter):
    """Copy the run, step and attempt onto each record.

    ``record.context`` is the compact tag used by the text format:
    ``run``, ``run/step`` or ``run/step#attempt`` (attempts after the first).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id.get()
        record.step = _step.get()
        record.attempt = _attempt.get()

        tag = record.run_id
        if record.step != NO_CONTEXT:
            tag += f"/{record.step}"
            if record.attempt > 1:
                tag += f"#{record.attempt}"
        record.context = tag
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Run, step and attempt appear only when set, so records from the HTTP
    layer stay short. Warnings and above carry their source location.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if getattr(record, "run_id", NO_CONTEXT) != NO_CONTEXT:
            data["run_id"] = record.run_id
        if getattr(record, "step", NO_CONTEXT) != NO_CONTEXT:
            data["step"] = record.step
            if getattr(record, "attempt", 0):
                data["attempt"] = record.attempt

        if record.levelno >= logging.WARNING:
            data["where"] = f"{record.filename}:{record.lineno}"
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                data[key] = value

        return json.dumps(data, ensure_ascii=False, default=str)


def _formatter(log_format: str, with_date: bool) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    return logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] [%(context)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S" if with_date else "%H:%M:%S",
    )


def _file_handler(config: Any) -> logging.Handler:
    """Rotating handler for the log file.

    Raises:
        OSError: If the log directory cannot be created or written
    """
    config.log_dir.mkdir(parents=True, exist_ok=True)
    path = config.log_dir / LOG_FILENAME
    if config.log_max_bytes > 0:
        return RotatingFileHandler(
            path,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
    return TimedRotatingFileHandler(
        path,
        when="midnight",
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )


def access_logger() -> logging.Logger:
    """Logger handed to aiohttp for HTTP access lines."""
    logger = logging.getLogger(ACCESS_LOGGER_NAME)
    logger.setLevel(logging.INFO)
    return logger


def setup_logging(config: Any, verbose: bool = False) -> bool:
    """Install console and file handlers on the root logger.

    Replaces any handlers already installed. If the log directory cannot be
    written, logging continues on the console only and a warning is logged.

    Args:
        config: Configuration with log_dir, log_level, log_format and rotation settings
        verbose: Force DEBUG on the console

    Returns:
        True if the log file is active
    """
    context_filter = ContextFilter()
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO))
    console.setFormatter(_formatter(config.log_format, with_date=False))
    console.addFilter(context_filter)
    root.addHandler(console)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    try:
        file_handler = _file_handler(config)
    except OSError as e:
        logging.getLogger(__name__).warning(
            "Cannot write to log directory %s (%s); logging to console only", config.log_dir, e,
        )
        return False

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(_formatter(config.log_format, with_date=True))
    file_handler.addFilter(context_filter)
    root.addHandler(file_handler)
    return True
