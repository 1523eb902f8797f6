"""
slo-reconciler structured logging.

Purpose
- Route ``structlog`` events into the stdlib ``slo_reconciler`` logger and write
  them as JSON lines from a background ``QueueListener`` thread, so reconcile
  coroutines never block on file I/O.
- Stamp correlation fields (analysis, namespace, ...) bound with
  ``correlation_scope`` onto every record emitted inside the scope.
- Mask credentials before anything reaches disk.

Record layout
- One compact, key-sorted JSON object per line::

    {"event": "...", "fields": {...}, "level": "INFO", "logger": "...",
     "namespace": "...", "analysis": "...", "timestamp": "...Z"}

- Correlation fields sit at the top level; event keyword arguments are nested
  under ``fields``.
- When the queue is full the record is dropped and counted instead of blocking.
"""

from __future__ import annotations

import atexit
import json
import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path, PurePath
from typing import Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

REDACTED: Final[str] = "***REDACTED***"
LOG_FILENAME: Final[str] = "reconciler.jsonl"
ROOT_LOGGER_NAME: Final[str] = "slo_reconciler"

_CORRELATION_ATTR: Final[str] = "correlation"
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    _CORRELATION_ATTR,
}
# structlog.stdlib.render_to_log_kwargs consumes these itself.
_PASSTHROUGH_KEYS: Final[frozenset[str]] = frozenset({"event", "exc_info", "stack_info", "stacklevel"})

_SECRET_KEY_MARKERS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passwd",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "private_key",
)
_INLINE_SECRET: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|passwd|secret|authorization)(\s*[:=]\s*)[^\s,;]+"
)
_BEARER: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    log_dir: Path | str = Path("logs")
    logger_name: str = ROOT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = LOG_FILENAME
    log_to_stdout: bool = False
    redact_secrets: bool = True

    @classmethod
    def from_observability(cls, section: Mapping[str, object]) -> LoggingConfig:
        """Build from the validated ``[observability]`` config table."""

        log_dir = section.get("log_dir", "logs")
        level = section.get("log_level", "INFO")
        return cls(
            log_dir=log_dir if isinstance(log_dir, (str, Path)) else "logs",
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=section.get("log_to_stdout") is True,
            redact_secrets=section.get("redact_secrets", True) is not False,
        )

    def resolved_level(self) -> int:
        if isinstance(self.level, int) and not isinstance(self.level, bool):
            return self.level
        level = logging.getLevelNamesMapping().get(str(self.level).strip().upper())
        if level is None:
            raise ValueError(f"unsupported logging level {self.level!r}")
        return level


# --- correlation ----------------------------------------------------------


def get_correlation_context() -> dict[str, str]:
    """Correlation fields bound in the current context (task or thread)."""

    return {key: str(value) for key, value in structlog.contextvars.get_contextvars().items()}


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for the duration of the block.

    ``None`` values are skipped. Outer values are restored on exit.
    """

    bound: dict[str, str] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"correlation field {key!r} must be a non-empty string")
        bound[key] = value.strip()
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def _attach_correlation(record: logging.LogRecord) -> bool:
    context = get_correlation_context()
    if context:
        setattr(record, _CORRELATION_ATTR, context)
    return True


# --- redaction and JSON shaping --------------------------------------------


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask values under secret-looking keys plus inline ``key=value`` and bearer credentials."""

    if isinstance(value, str):
        masked = _INLINE_SECRET.sub(lambda match: f"{match[1]}{match[2]}{REDACTED}", value)
        return _BEARER.sub(f"Bearer {REDACTED}", masked)
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_secret_key(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SECRET_KEY_MARKERS)


def _unredacted(value: JSONValue) -> JSONValue:
    return value


def _jsonable(value: object) -> JSONValue:
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if value is None or isinstance(value, (str, int)):
        return value
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_jsonable(item) for item in value), key=repr)
    if isinstance(value, PurePath):
        return value.as_posix()
    return repr(value)


def _utc_timestamp(record: logging.LogRecord) -> str:
    seconds = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
    return f"{seconds}.{int(record.msecs):03d}Z"


class JsonLineFormatter(logging.Formatter):
    """Render a record as one compact JSON object."""

    def __init__(self, redactor: LogRedactor | None = None) -> None:
        super().__init__()
        self._redact: LogRedactor = redactor if redactor is not None else _unredacted

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, JSONValue] = {
            "timestamp": _utc_timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "event": self._redact(record.getMessage()),
        }
        payload.update(getattr(record, _CORRELATION_ATTR, None) or {})

        extras = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        }
        if extras:
            payload["fields"] = self._redact(extras)
        if record.exc_info:
            payload["exception"] = self._redact(self.formatException(record.exc_info))
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


# --- handlers and lifecycle --------------------------------------------------


class _BoundedQueueHandler(logging.handlers.QueueHandler):
    """Hands records to the listener without ever blocking the caller."""

    def __init__(self, records: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(records)
        self._dropped = 0
        self._dropped_lock = threading.Lock()
        self.addFilter(_attach_correlation)

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


@dataclass(eq=False)
class StructuredLoggingHandle:
    """A live logging setup. ``shutdown`` drains the queue and closes every sink."""

    logger: logging.Logger
    log_path: Path
    records: queue.Queue[logging.LogRecord] = field(repr=False)
    handler: _BoundedQueueHandler = field(repr=False)
    listener: logging.handlers.QueueListener = field(repr=False)
    sinks: tuple[logging.Handler, ...] = field(repr=False)
    _closed: bool = field(default=False, init=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def dropped_records(self) -> int:
        return self.handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self.records.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self.sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._close_lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self.listener.stop()
            self.logger.removeHandler(self.handler)
            self.handler.close()
            for sink in self.sinks:
                sink.close()
            self._closed = True


class _ActiveHandle:
    """Process-wide slot for the current logging setup."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handle: StructuredLoggingHandle | None = None
        self._exit_hook_installed = False

    def get(self) -> StructuredLoggingHandle | None:
        with self._lock:
            return self._handle

    def set(self, handle: StructuredLoggingHandle) -> None:
        with self._lock:
            self._handle = handle
            if not self._exit_hook_installed:
                atexit.register(shutdown_logging)
                self._exit_hook_installed = True

    def clear(self, handle: StructuredLoggingHandle) -> None:
        with self._lock:
            if self._handle is handle:
                self._handle = None


_ACTIVE = _ActiveHandle()


def _prefix_reserved_keys(
    _logger: object, _method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    # LogRecord refuses ``extra`` keys that shadow its own attributes.
    clashing = [key for key in event_dict if key in _RECORD_ATTRIBUTES and key not in _PASSTHROUGH_KEYS]
    for key in clashing:
        event_dict[f"field_{key}"] = event_dict.pop(key)
    return event_dict


def configure_structlog() -> None:
    """Send structlog events to stdlib logging: event name as message, kwargs as extras."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            _prefix_reserved_keys,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install queue-backed JSON-line logging and route structlog into it.

    Any previously active setup is shut down first. Raises ``ValueError`` for an
    unknown level, a non-positive queue size, or a file name with directories.
    """

    level = config.resolved_level()
    if config.queue_size < 1:
        raise ValueError("queue_size must be > 0")
    filename = config.log_filename.strip()
    if not filename or Path(filename).name != filename:
        raise ValueError(f"log_filename must be a bare file name, got {config.log_filename!r}")
    logger_name = config.logger_name.strip()
    if not logger_name:
        raise ValueError("logger_name must not be empty")

    shutdown_logging()

    log_path = Path(config.log_dir) / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = JsonLineFormatter(default_log_redactor if config.redact_secrets else None)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler(sys.stdout))
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    handler = _BoundedQueueHandler(records)
    handler.setLevel(level)
    listener = logging.handlers.QueueListener(records, *sinks, respect_handler_level=True)

    logger = logging.getLogger(logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(handler)
    listener.start()
    configure_structlog()

    handle = StructuredLoggingHandle(
        logger=logger,
        log_path=log_path,
        records=records,
        handler=handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    _ACTIVE.set(handle)
    return handle


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    return _ACTIVE.get()


def flush_logging(
    handle: StructuredLoggingHandle | None = None, *, timeout_seconds: float = 2.0
) -> None:
    target = handle if handle is not None else _ACTIVE.get()
    if target is not None:
        target.flush(timeout_seconds=timeout_seconds)


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None, *, timeout_seconds: float = 2.0
) -> None:
    target = handle if handle is not None else _ACTIVE.get()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    _ACTIVE.clear(target)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "JsonLineFormatter",
    "LOG_FILENAME",
    "LogRedactor",
    "LoggingConfig",
    "REDACTED",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_structured_logging",
    "shutdown_logging",
]
