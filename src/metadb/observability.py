"""Structured logging, operation context and metric hooks.

Store operations run inside an ``OperationContext`` naming the table and
the operation. Log records and metrics emitted during the call pick both
up, so a sweep log line reads::

    {"level": "INFO", "message": "Expired rows removed",
     "context": {"table": "__metadb", "operation": "gc", "removed": 3}, ...}
"""

import functools
import json
import logging
import sys
import time
from collections.abc import Awaitable, Callable
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

table_var: ContextVar[str | None] = ContextVar("table", default=None)
operation_var: ContextVar[str | None] = ContextVar("operation", default=None)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


class LogLevel(str, Enum):
    """Log levels matching Python's logging module."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LogContext:
    """Table and operation a log line or metric belongs to."""

    table: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def current(cls) -> "LogContext":
        return cls(table=table_var.get(), operation=operation_var.get())

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a dict, leaving out unset fields."""
        result: dict[str, Any] = {}
        if self.table:
            result["table"] = self.table
        if self.operation:
            result["operation"] = self.operation
        result.update(self.extra)
        return result


@dataclass
class LogEntry:
    """One JSON log line."""

    level: LogLevel
    message: str
    timestamp: str
    logger: str
    context: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None
    duration_ms: float | None = None

    def to_json(self) -> str:
        data: dict[str, Any] = {
            "level": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "logger": self.logger,
        }
        for name in ("context", "error"):
            value = getattr(self, name)
            if value:
                data[name] = value
        if self.duration_ms is not None:
            data["duration_ms"] = round(self.duration_ms, 3)
        return json.dumps(data, default=str)


class StructuredFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        # Records from StructuredLogger already carry the operation context
        context = getattr(record, "context", None)
        if not isinstance(context, dict):
            context = LogContext.current().to_dict()

        error = None
        if record.exc_info and record.exc_info[0] is not None:
            error = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        return LogEntry(
            level=LogLevel(record.levelname),
            message=record.getMessage(),
            timestamp=datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            logger=record.name,
            context=context,
            error=error,
            duration_ms=getattr(record, "duration_ms", None),
        ).to_json()


class StructuredLogger(logging.LoggerAdapter):
    """Logger taking ``context``, ``error`` and ``duration_ms`` keywords.

    The current table and operation are captured into the record's
    ``context`` when the record is created.

    Example:
        logger = get_logger(__name__)
        logger.debug("Key stored", context={"key": "a"})
        logger.error("GC sweep failed", error=exc)
    """

    def __init__(self, name: str, level: LogLevel | None = None) -> None:
        super().__init__(logging.getLogger(name), {})
        if level is not None:
            self.logger.setLevel(level.value)

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(kwargs.pop("extra", None) or {})

        context = {**LogContext.current().to_dict(), **(kwargs.pop("context", None) or {})}
        if context:
            extra["context"] = context

        duration_ms = kwargs.pop("duration_ms", None)
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms

        error = kwargs.pop("error", None)
        if error is not None:
            kwargs["exc_info"] = (type(error), error, error.__traceback__)

        kwargs["extra"] = extra
        return msg, kwargs


class OperationContext:
    """Tags logs and metrics inside the block with a table and operation.

    Unset arguments keep the enclosing values, so an operation called from
    a GC tick still reports the tick's table.
    """

    def __init__(self, table: str | None = None, operation: str | None = None) -> None:
        self.table = table
        self.operation = operation
        self._tokens: list[tuple[ContextVar[str | None], Token[str | None]]] = []

    def __enter__(self) -> "OperationContext":
        for var, value in ((table_var, self.table), (operation_var, self.operation)):
            if value is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *args: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


class Timer:
    """Measures wall time of a block in milliseconds."""

    def __init__(self) -> None:
        self.start_time = 0.0
        self.end_time = 0.0

    @property
    def duration_ms(self) -> float:
        return (self.end_time - self.start_time) * 1000

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.end_time = time.perf_counter()


def traced(operation: str) -> Callable[[F], F]:
    """Run a store coroutine method as a named operation.

    The instance's ``table_name`` and ``operation`` tag everything logged
    or emitted during the call. The call reports
    ``metadb.operation.duration`` and, when it raises,
    ``metadb.operation.errors``.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            with OperationContext(table=self.table_name, operation=operation):
                timer = Timer()
                try:
                    with timer:
                        return await func(self, *args, **kwargs)
                except Exception as e:
                    emit_counter("metadb.operation.errors", {"error": type(e).__name__})
                    raise
                finally:
                    emit_timer("metadb.operation.duration", timer.duration_ms)

        return wrapper  # type: ignore[return-value]

    return decorator


MetricCallback = Callable[[str, float, dict[str, Any]], None]

_metric_callbacks: list[MetricCallback] = []


def register_metric_callback(callback: MetricCallback) -> None:
    """Send every metric to ``callback(name, value, labels)``."""
    _metric_callbacks.append(callback)


def unregister_metric_callback(callback: MetricCallback) -> None:
    """Remove a registered callback. No-op if unknown."""
    if callback in _metric_callbacks:
        _metric_callbacks.remove(callback)


def emit_metric(name: str, value: float, labels: dict[str, Any] | None = None) -> None:
    """Emit a metric to all registered callbacks.

    The current table and operation are added as labels unless given.
    A failing callback is logged and skipped.
    """
    labels = {**LogContext.current().to_dict(), **(labels or {})}

    for callback in list(_metric_callbacks):
        try:
            callback(name, value, labels)
        except Exception:
            logging.getLogger(__name__).warning(
                "Metric callback failed for %s", name, exc_info=True
            )


def emit_counter(name: str, labels: dict[str, Any] | None = None) -> None:
    """Emit a counter metric (increment by 1)."""
    emit_metric(name, 1.0, labels)


def emit_timer(name: str, duration_ms: float, labels: dict[str, Any] | None = None) -> None:
    """Emit a timer metric."""
    emit_metric(name, duration_ms, labels)


def configure_logging(level: LogLevel = LogLevel.INFO, format: str = "json") -> None:
    """Send ``metadb`` logs to stdout, replacing earlier handlers.

    Args:
        level: Minimum log level
        format: Output format ("json" or "text")
    """
    root_logger = logging.getLogger("metadb")
    root_logger.setLevel(level.value)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module."""
    return StructuredLogger(name)
