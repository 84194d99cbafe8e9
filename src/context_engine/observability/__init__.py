"""
Context Engine - Observability Module

Structured logging and in-process metrics.
"""

from .monitoring import JSONFormatter, ObservabilityAdapter, configure_logging, get_trace_id

__all__ = [
    "ObservabilityAdapter",
    "JSONFormatter",
    "configure_logging",
    "get_trace_id",
]
