"""
Arcadia Logging Subsystem

Purpose
-------
One logging pipeline for the API process, the workers and the maintenance
scripts:

- Records go through a bounded QueueHandler so the event loop never blocks
  on handler I/O; a QueueListener thread formats and writes them.
- Console output is JSON in production and human-readable text elsewhere;
  an optional daily-rotated JSON file keeps the last day locally.
- Every record carries the reward context of the code that logged it
  (player_id, session_id, job_id, operation, component, correlation_id),
  propagated through a ContextVar so concurrent tasks never mix contexts.

Public API
----------
- setup_logging() / shutdown_logging()
- get_logger(name)
- LogContext: scoped context (sync or async `with`)
- set_log_context() / get_log_context() / clear_log_context(): task-wide context
- get_logging_health(): queue depth and dropped-record counters

Structured fields go through `extra={...}` and land under "extra" in JSON.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.core.config.config import Config

CONTEXT_FIELDS = ("player_id", "session_id", "job_id", "correlation_id", "component", "operation")

# Identifiers are stored as strings so JSON output is stable across id types
_ID_FIELDS = ("player_id", "session_id", "job_id")

_log_context: ContextVar[Dict[str, Any]] = ContextVar("arcadia_log_context", default={})


# ============================================================================
# Configuration
# ============================================================================


@dataclass(frozen=True, slots=True)
class LoggerConfig:
    CONSOLE_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
    DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    DAILY_BASENAME: str = "arcadia_daily.json.log"
    DAILY_BACKUP_COUNT: int = 1
    QUEUE_MAX_SIZE: int = 10_000

    @property
    def is_production(self) -> bool:
        return str(Config.ENVIRONMENT).lower() == "production"

    @property
    def log_level(self) -> int:
        name = Config.LOG_LEVEL if isinstance(Config.LOG_LEVEL, str) else "INFO"
        return getattr(logging, name.upper(), logging.INFO)

    @property
    def use_json(self) -> bool:
        return bool(getattr(Config, "LOG_JSON", self.is_production))

    @property
    def use_colors(self) -> bool:
        return not self.use_json and sys.stdout.isatty()

    @property
    def file_enabled(self) -> bool:
        return bool(getattr(Config, "LOG_FILE_ENABLED", True))

    @property
    def logs_dir(self) -> Path:
        return Path(Config.LOGS_DIR).resolve()


LOGGER_CONFIG = LoggerConfig()


@dataclass(slots=True)
class _PipelineCounters:
    enqueued: int = 0
    dropped: int = 0
    listener_errors: int = 0


_counters = _PipelineCounters()
_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_queue_listener: Optional[QueueListener] = None


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copies the current reward context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()
        for field in CONTEXT_FIELDS:
            setattr(record, field, context.get(field) or "N/A")
        if record.component == "N/A":
            record.component = record.name.split(".", 1)[0]
        return True


class ColoredFormatter(logging.Formatter):
    COLORS: Dict[str, str] = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        original = record.levelname
        color = self.COLORS.get(original)
        if color:
            record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


# Attributes every LogRecord has; anything else on a record came from `extra`
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, "N/A"):
                entry[field] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, ensure_ascii=False, default=str)


# ============================================================================
# Queue pipeline
# ============================================================================


class ArcadiaQueueHandler(QueueHandler):
    """Never blocks: a full queue drops the record and counts it."""

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _counters.enqueued += 1
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _counters.dropped += 1
            sys.stderr.write("Arcadia logging queue full; dropping log record.\n")


class ArcadiaQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _counters.listener_errors += 1
        sys.stderr.write("Arcadia logging handler error while processing record.\n")


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(LOGGER_CONFIG.log_level)
    if LOGGER_CONFIG.use_json:
        handler.setFormatter(JSONFormatter())
    else:
        formatter_class = ColoredFormatter if LOGGER_CONFIG.use_colors else logging.Formatter
        handler.setFormatter(
            formatter_class(fmt=LOGGER_CONFIG.CONSOLE_FORMAT, datefmt=LOGGER_CONFIG.DATE_FORMAT)
        )
    return handler


def _daily_file_handler() -> logging.Handler:
    LOGGER_CONFIG.logs_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(LOGGER_CONFIG.logs_dir / LOGGER_CONFIG.DAILY_BASENAME),
        when="midnight",
        backupCount=LOGGER_CONFIG.DAILY_BACKUP_COUNT,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(LOGGER_CONFIG.log_level)
    handler.setFormatter(JSONFormatter())
    return handler


def _is_initialized() -> bool:
    return bool(getattr(logging.getLogger(), "_arcadia_logging_initialized", False))


def setup_logging() -> None:
    """Install the queue pipeline on the root logger. Idempotent."""
    global _queue_listener, _log_queue, _counters

    if _is_initialized():
        return

    root = logging.getLogger()
    root.setLevel(LOGGER_CONFIG.log_level)
    root.handlers.clear()
    root.filters.clear()

    handlers: List[logging.Handler] = [_console_handler()]
    if LOGGER_CONFIG.file_enabled:
        handlers.append(_daily_file_handler())

    _counters = _PipelineCounters()
    _log_queue = queue.Queue(LOGGER_CONFIG.QUEUE_MAX_SIZE)
    _queue_listener = ArcadiaQueueListener(_log_queue, *handlers, respect_handler_level=True)
    _queue_listener.start()

    queue_handler = ArcadiaQueueHandler(_log_queue)
    queue_handler.setLevel(LOGGER_CONFIG.log_level)
    # Filter on the handler so records from every logger are enriched
    queue_handler.addFilter(ContextFilter())
    root.addHandler(queue_handler)

    for noisy in ("sqlalchemy.engine", "aiosqlite", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    setattr(root, "_arcadia_logging_initialized", True)
    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "log_level": logging.getLevelName(LOGGER_CONFIG.log_level),
            "json": LOGGER_CONFIG.use_json,
            "file_enabled": LOGGER_CONFIG.file_enabled,
        },
    )


def shutdown_logging() -> None:
    """Flush queued records and detach every root handler."""
    global _queue_listener, _log_queue

    if not _is_initialized():
        return

    root = logging.getLogger()
    root.info("Shutting down logging subsystem.")
    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None

    for handler in list(root.handlers):
        handler.flush()
        handler.close()
        root.removeHandler(handler)

    setattr(root, "_arcadia_logging_initialized", False)
    _log_queue = None


def get_logging_health() -> Dict[str, Any]:
    return {
        "initialized": _is_initialized(),
        "queue_size": _log_queue.qsize() if _log_queue is not None else 0,
        "queue_max_size": _log_queue.maxsize if _log_queue is not None else 0,
        "records_enqueued": _counters.enqueued,
        "records_dropped": _counters.dropped,
        "listener_errors": _counters.listener_errors,
    }


# ============================================================================
# Context
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


def _with_fields(base: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in fields.items():
        if value is None:
            continue
        merged[key] = str(value) if key in _ID_FIELDS else value
    return merged


class LogContext:
    """
    Scoped log context for a player, session or job.

    Fields layer on top of the enclosing context and are restored on exit.
    A correlation id is inherited, or generated for the outermost scope.

    Example
    -------
    >>> async with LogContext(player_id=42, session_id=7, operation="session.complete"):
    ...     logger.info("Completing session")
    """

    def __init__(self, **fields: Any) -> None:
        inherited = _log_context.get()
        self.context = _with_fields(inherited, fields)
        self.context.setdefault("correlation_id", uuid.uuid4().hex[:8])
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Add fields to the current task's context until it is cleared."""
    _log_context.set(_with_fields(_log_context.get(), fields))


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


setup_logging()
