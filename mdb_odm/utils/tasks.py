"""
Background task helpers.
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


def _log_task_failure(task: "asyncio.Task[Any]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(
            f"Background task '{task.get_name()}' failed: {error}",
            exc_info=(type(error), error, error.__traceback__),
        )


def create_managed_task(
    coro: Coroutine[Any, Any, Any], task_name: Optional[str] = None
) -> "Optional[asyncio.Task[Any]]":
    """
    Run a coroutine as a background task on the running event loop.

    Failures are logged instead of surfacing as "exception was never
    retrieved" warnings.

    Args:
        coro: Coroutine to run as a background task
        task_name: Optional name for the task

    Returns:
        The task, or None when no event loop is running. In that case the
        coroutine is closed without running.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug(f"Skipping background task '{task_name}' - no event loop running")
        coro.close()
        return None
    task = loop.create_task(coro, name=task_name)
    task.add_done_callback(_log_task_failure)
    return task
