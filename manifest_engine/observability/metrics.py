"""
Metrics collection for MANIFEST_ENGINE.

Records timing and outcome of every exposed engine operation (register,
publish, create_room, upgrade, ...) plus integrity faults raised by the
version resolver.
"""

import functools
import inspect
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .logging import (
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_operation,
    set_correlation_id,
)

logger = logging.getLogger(__name__)
operation_logger = get_logger("manifest_engine.operations")

INTEGRITY_FAULT_OPERATION = "integrity.manifest_version_not_found"


@dataclass
class OperationMetrics:
    """Metrics for a single operation."""

    operation_name: str
    count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float("inf")
    max_duration_ms: float = 0.0
    error_count: int = 0
    last_execution: datetime | None = None

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average duration in milliseconds."""
        return self.total_duration_ms / self.count if self.count > 0 else 0.0

    @property
    def error_rate(self) -> float:
        """Calculate error rate as percentage."""
        return (self.error_count / self.count * 100) if self.count > 0 else 0.0

    def record(self, duration_ms: float, success: bool = True) -> None:
        """Record a single operation execution."""
        self.count += 1
        self.total_duration_ms += duration_ms
        self.min_duration_ms = min(self.min_duration_ms, duration_ms)
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if not success:
            self.error_count += 1
        self.last_execution = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "operation": self.operation_name,
            "count": self.count,
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "min_duration_ms": (
                round(self.min_duration_ms, 2) if self.min_duration_ms != float("inf") else 0.0
            ),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "error_count": self.error_count,
            "error_rate_percent": round(self.error_rate, 2),
            "last_execution": (self.last_execution.isoformat() if self.last_execution else None),
        }


class MetricsCollector:
    """
    Centralized, thread-safe metrics collector.

    Metrics are keyed by operation name plus sorted tags (``app_id``,
    ``outcome``, ...) and bounded with LRU eviction.
    """

    def __init__(self, max_metrics: int = 10000):
        self._metrics: OrderedDict[str, OperationMetrics] = OrderedDict()
        self._lock = threading.Lock()
        self._max_metrics = max_metrics

    @staticmethod
    def _key(operation_name: str, tags: dict[str, Any]) -> str:
        if not tags:
            return operation_name
        tag_str = "_".join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{operation_name}[{tag_str}]"

    def record_operation(
        self, operation_name: str, duration_ms: float, success: bool = True, **tags: Any
    ) -> None:
        """
        Record an operation execution.

        Args:
            operation_name: Name of the operation (e.g., "registry.publish_manifest")
            duration_ms: Duration in milliseconds
            success: Whether the operation succeeded
            **tags: Additional tags for filtering (app_id, outcome, etc.)
        """
        key = self._key(operation_name, tags)

        with self._lock:
            metric = self._metrics.get(key)
            if metric is None:
                if len(self._metrics) >= self._max_metrics:
                    self._metrics.popitem(last=False)
                metric = self._metrics[key] = OperationMetrics(operation_name=operation_name)
            else:
                self._metrics.move_to_end(key)
            metric.record(duration_ms, success)

    def get_metrics(self, operation_name: str | None = None) -> dict[str, Any]:
        """
        Get metrics, optionally only those whose key starts with ``operation_name``.
        """
        with self._lock:
            metrics = {
                k: v.to_dict()
                for k, v in self._metrics.items()
                if operation_name is None or k.startswith(operation_name)
            }
            total_operations = len(self._metrics)

        return {
            "timestamp": datetime.now().isoformat(),
            "metrics": metrics,
            "total_operations": total_operations,
        }

    def get_summary(self) -> dict[str, Any]:
        """
        Get metrics aggregated by base operation name (tags folded together).
        """
        with self._lock:
            aggregated: dict[str, OperationMetrics] = {}
            for metric in self._metrics.values():
                agg = aggregated.setdefault(
                    metric.operation_name, OperationMetrics(operation_name=metric.operation_name)
                )
                agg.count += metric.count
                agg.total_duration_ms += metric.total_duration_ms
                agg.min_duration_ms = min(agg.min_duration_ms, metric.min_duration_ms)
                agg.max_duration_ms = max(agg.max_duration_ms, metric.max_duration_ms)
                agg.error_count += metric.error_count
                if metric.last_execution and (
                    not agg.last_execution or metric.last_execution > agg.last_execution
                ):
                    agg.last_execution = metric.last_execution
            total_operations = len(self._metrics)

        return {
            "timestamp": datetime.now().isoformat(),
            "total_operations": total_operations,
            "summary": {name: m.to_dict() for name, m in aggregated.items()},
        }

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._metrics.clear()

    def get_operation_count(self, operation_name: str) -> int:
        """Get the count of executions for an operation across all tags."""
        with self._lock:
            return sum(
                m.count for m in self._metrics.values() if m.operation_name == operation_name
            )

    def get_error_count(self, operation_name: str) -> int:
        """Get the number of failed executions for an operation across all tags."""
        with self._lock:
            return sum(
                m.error_count
                for m in self._metrics.values()
                if m.operation_name == operation_name
            )


# Global metrics collector instance
_metrics_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get or create the global metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def record_operation(
    operation_name: str, duration_ms: float, success: bool = True, **tags: Any
) -> None:
    """
    Record an operation in the global metrics collector.

    Args:
        operation_name: Name of the operation
        duration_ms: Duration in milliseconds
        success: Whether the operation succeeded
        **tags: Additional tags
    """
    get_metrics_collector().record_operation(operation_name, duration_ms, success, **tags)


def record_integrity_fault(app_id: str, version: str) -> None:
    """Count a missing archived manifest; these must be alerted on."""
    get_metrics_collector().record_operation(
        INTEGRITY_FAULT_OPERATION, 0.0, success=False, app_id=app_id, version=version
    )


def _begin() -> bool:
    if get_correlation_id() is not None:
        return False
    set_correlation_id()
    return True


def _finish(
    operation_name: str,
    start_time: float,
    error: BaseException | None,
    owns_correlation_id: bool,
    tags: dict[str, Any],
) -> None:
    duration_ms = (time.time() - start_time) * 1000
    success = error is None
    record_operation(operation_name, duration_ms, success, **tags)
    log_operation(operation_logger, operation_name, success, duration_ms, error=error)
    if owns_correlation_id:
        clear_correlation_id()


def timed_operation(operation_name: str, **tags: Any):
    """
    Decorator to automatically time and record a coroutine or function.

    Any exception marks the execution as failed and is re-raised unchanged.
    The outermost timed call binds a correlation id for its duration, and
    every call emits a summary record through ``log_operation``.

    Usage:
        @timed_operation("engine.publish_manifest")
        async def publish_manifest(self, ...):
            ...
    """

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                owns_correlation_id = _begin()
                start_time = time.time()
                error = None
                try:
                    return await func(*args, **kwargs)
                except BaseException as e:
                    error = e
                    raise
                finally:
                    _finish(operation_name, start_time, error, owns_correlation_id, tags)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            owns_correlation_id = _begin()
            start_time = time.time()
            error = None
            try:
                return func(*args, **kwargs)
            except BaseException as e:
                error = e
                raise
            finally:
                _finish(operation_name, start_time, error, owns_correlation_id, tags)

        return sync_wrapper

    return decorator
