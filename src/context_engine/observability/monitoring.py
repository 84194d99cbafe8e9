"""
Context Engine - Observability Monitoring

In-process metrics collection and structured logging.
Metrics are kept in memory on the adapter; exporting them to a telemetry
sink is the host application's concern.
"""

import contextvars
import json
import logging
import threading
import time
from collections import defaultdict
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

# Trace ID context variable for correlating log lines of one request
_trace_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar("trace_id", default=None)

_RESERVED_RECORD_KEYS = frozenset(
    (
        "args",
        "msg",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "name",
        "message",
    )
)


def _tag_key(metric: str, tags: dict[str, str] | None) -> str:
    if not tags:
        return metric
    rendered = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
    return f"{metric}[{rendered}]"


class ObservabilityAdapter:
    """
    In-process observability adapter.

    Provides:
    - Metrics (counters, gauges, histograms) held in memory
    - Trace IDs for log correlation
    - Span timing through trace()
    """

    def __init__(self, enable_metrics: bool = True, enable_tracing: bool = True):
        self.enable_metrics = enable_metrics
        self.enable_tracing = enable_tracing

        self._counters: dict[str, float] = defaultdict(float)
        self._gauges: dict[str, float] = {}
        self._histograms: dict[str, list[float]] = defaultdict(list)
        self._max_samples = 1000
        self._lock = threading.Lock()

        self.logger = logging.getLogger("context_engine.observability")

    def increment(self, metric: str, value: float = 1.0, tags: dict[str, str] | None = None) -> None:
        """
        Increment a counter metric.

        Args:
            metric: Metric name (e.g., "cache.hits")
            value: Value to increment by
            tags: Optional metric tags/labels
        """
        if not self.enable_metrics:
            return
        with self._lock:
            self._counters[_tag_key(metric, tags)] += value

    def gauge(self, metric: str, value: float, tags: dict[str, str] | None = None) -> None:
        """Set a gauge metric."""
        if not self.enable_metrics:
            return
        with self._lock:
            self._gauges[_tag_key(metric, tags)] = value

    def histogram(self, metric: str, value: float, tags: dict[str, str] | None = None) -> None:
        """Record a histogram sample, keeping the most recent samples only."""
        if not self.enable_metrics:
            return
        with self._lock:
            samples = self._histograms[_tag_key(metric, tags)]
            samples.append(value)
            if len(samples) > self._max_samples:
                del samples[: len(samples) - self._max_samples]

    @contextmanager
    def trace(self, span_name: str, tags: dict[str, str] | None = None) -> Generator[str, None, None]:
        """
        Time a span and expose a trace ID to log records emitted inside it.

        Nested spans reuse the outer trace ID.

        Yields:
            Trace ID for the span
        """
        existing = _trace_id_ctx.get()
        trace_id = existing or uuid4().hex
        token = _trace_id_ctx.set(trace_id) if existing is None else None
        start = time.perf_counter()

        try:
            yield trace_id
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.histogram(f"{span_name}.duration_ms", duration_ms, tags)
            if self.enable_tracing:
                self.logger.debug(
                    f"Span {span_name} finished in {duration_ms:.2f}ms",
                    extra={"span": span_name, "duration_ms": duration_ms, "tags": tags or {}},
                )
            if token is not None:
                _trace_id_ctx.reset(token)

    def get_metrics(self) -> dict[str, Any]:
        """Snapshot of collected metrics."""
        with self._lock:
            histograms = {
                name: {
                    "count": len(samples),
                    "avg": sum(samples) / len(samples) if samples else 0.0,
                    "max": max(samples) if samples else 0.0,
                }
                for name, samples in self._histograms.items()
            }
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": histograms,
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


def get_trace_id() -> str | None:
    """Trace ID of the current span, if any."""
    return _trace_id_ctx.get()


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        trace_id = _trace_id_ctx.get()
        if trace_id:
            log_data["trace_id"] = trace_id

        # Add any extra fields from record.__dict__
        for key, value in record.__dict__.items():
            if key not in log_data and not key.startswith("_") and key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(level: str = "INFO", json_format: bool = False) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Log level name
        json_format: Use JSONFormatter instead of a plain text format

    Returns:
        The configured "context_engine" logger
    """
    logger = logging.getLogger("context_engine")
    logger.handlers.clear()

    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
