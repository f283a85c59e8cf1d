"""
Observability: contextual logging and in-process metrics.
"""

from .logging import (
    ContextualLoggerAdapter,
    connection_context,
    describe_connection,
    get_logger,
    get_logging_context,
    log_event,
)
from .metrics import (
    MetricsCollector,
    TimingSeries,
    get_metrics_collector,
    increment,
    record_operation,
    timed_operation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "TimingSeries",
    "get_metrics_collector",
    "increment",
    "record_operation",
    "timed_operation",
    # Logging
    "connection_context",
    "describe_connection",
    "get_logging_context",
    "ContextualLoggerAdapter",
    "get_logger",
    "log_event",
]
