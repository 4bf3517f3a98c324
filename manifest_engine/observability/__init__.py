"""
Observability components.

Provides structured logging with correlation context and operation metrics.
"""

from .logging import (
    ContextualLoggerAdapter,
    clear_app_context,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    get_logging_context,
    log_operation,
    set_app_context,
    set_correlation_id,
)
from .metrics import (
    MetricsCollector,
    OperationMetrics,
    get_metrics_collector,
    record_integrity_fault,
    record_operation,
    timed_operation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "OperationMetrics",
    "get_metrics_collector",
    "record_operation",
    "record_integrity_fault",
    "timed_operation",
    # Logging
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "set_app_context",
    "clear_app_context",
    "get_logging_context",
    "ContextualLoggerAdapter",
    "get_logger",
    "log_operation",
]
