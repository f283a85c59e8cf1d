"""
Logging helpers for MDB_ODM.

``get_logger()`` returns an adapter that stamps every record with the
connection currently doing work: its id, database and host. The connection is
attached with ``connection_context()``. The context lives in a ``ContextVar``,
so each handshake task and each replayed operation keeps its own.

Usage:
    logger = get_logger(__name__)

    with connection_context(conn, phase="initial connection"):
        logger.info("Pinging server")
"""

import contextlib
import contextvars
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from ..core.connection import Connection

_connection_context: contextvars.ContextVar[Optional[dict[str, Any]]] = contextvars.ContextVar(
    "mdb_odm_connection_context", default=None
)


def describe_connection(connection: "Connection") -> dict[str, Any]:
    """Log fields identifying ``connection``."""
    return {"connection_id": connection.id, "db_name": connection.name, "host": connection.host}


@contextlib.contextmanager
def connection_context(connection: "Connection", **fields: Any) -> Iterator[dict[str, Any]]:
    """
    Attach ``connection`` (and any extra ``fields``) to records logged inside
    the block. Nested blocks add to the outer context.
    """
    context = {**(_connection_context.get() or {}), **describe_connection(connection), **fields}
    token = _connection_context.set(context)
    try:
        yield context
    finally:
        _connection_context.reset(token)


def get_logging_context() -> dict[str, Any]:
    return dict(_connection_context.get() or {})


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Merges the current connection context into ``extra``; explicit keys win."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = get_logging_context()
        context.update(kwargs.get("extra") or {})
        kwargs["extra"] = context
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_event(
    logger: logging.Logger | logging.LoggerAdapter,
    message: str,
    level: int = logging.INFO,
    duration_ms: Optional[float] = None,
    **fields: Any,
) -> None:
    """
    Log a lifecycle event with structured fields.

    Args:
        logger: Logger or adapter
        message: Human readable message
        level: Log level
        duration_ms: Appended to the message and stored rounded in ``extra``
        **fields: Additional structured fields
    """
    if duration_ms is not None:
        fields["duration_ms"] = round(duration_ms, 2)
        message = f"{message} ({duration_ms:.2f}ms)"
    logger.log(level, message, extra=fields)
