"""
Logging context for MANIFEST_ENGINE.

Each engine operation runs under a correlation id and an app context (app
id, room id, actor, target version). Loggers returned by ``get_logger`` copy
both into every record's ``extra``, so one publish or one room upgrade can be
followed through the registry, resolver, coordinator and repository logs.

Example:
    set_app_context(app_id="app_lottery_v1", room_id="42", version="2.0.0")
    logger = get_logger(__name__)
    logger.info("Room upgraded", extra={"outcome": "ASSISTED"})
"""

import contextvars
import logging
import uuid
from typing import Any

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "manifest_engine_correlation_id", default=None
)

_app_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "manifest_engine_app_context", default=None
)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Bind a correlation id to the current task; a fresh uuid4 when omitted.

    Returns:
        The bound correlation id
    """
    correlation_id = correlation_id or uuid.uuid4().hex
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def set_app_context(app_id: str | None = None, **fields: Any) -> None:
    """
    Replace the app context of the current task.

    Args:
        app_id: Application the operation acts on
        **fields: room_id, actor_id, version; ``None`` values are dropped
    """
    context = {k: v for k, v in {"app_id": app_id, **fields}.items() if v is not None}
    _app_context.set(context)


def clear_app_context() -> None:
    _app_context.set(None)


def get_logging_context() -> dict[str, Any]:
    """Correlation id plus app context, ready to merge into ``extra``."""
    context = dict(_app_context.get() or {})
    correlation_id = _correlation_id.get()
    if correlation_id:
        context["correlation_id"] = correlation_id
    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """
    Adds the logging context to every record. Keys passed in ``extra`` win
    over context keys of the same name.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**get_logging_context(), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    success: bool,
    duration_ms: float,
    error: BaseException | None = None,
) -> None:
    """
    Emit the summary record of one engine operation.

    Successes log at INFO. Failures log at WARNING with ``error_code`` set to
    the engine error's ``code`` (or the exception class name).
    """
    fields: dict[str, Any] = {
        "operation": operation,
        "success": success,
        "duration_ms": round(duration_ms, 2),
    }
    if error is not None:
        fields["error_code"] = getattr(error, "code", type(error).__name__)

    if success:
        logger.info(f"{operation} completed in {duration_ms:.2f}ms", extra=fields)
    else:
        logger.warning(
            f"{operation} failed with {fields.get('error_code', 'error')} "
            f"after {duration_ms:.2f}ms",
            extra=fields,
        )
