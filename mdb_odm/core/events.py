"""
Lifecycle event emitter.

Connections and the ``MongoODM`` instance publish lifecycle events
(``connected``, ``close``, ``model``, ...) through ``EventEmitter``. Listeners
run synchronously in registration order. A listener may be a coroutine
function; its coroutine is scheduled on the running loop.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Optional

from ..utils.tasks import create_managed_task

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Minimal publish/subscribe helper keyed by event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[tuple[Listener, bool]]] = defaultdict(list)

    def on(self, event: str, listener: Optional[Listener] = None):
        """
        Register ``listener`` for ``event``.

        Can be used as a decorator::

            @conn.on("connected")
            def announce():
                ...

        Returns:
            The listener, so the decorator form leaves the function intact.
        """
        if listener is None:
            return lambda fn: self.on(event, fn)
        self._listeners[event].append((listener, False))
        return listener

    def once(self, event: str, listener: Optional[Listener] = None):
        """Register a listener that is removed after its first call."""
        if listener is None:
            return lambda fn: self.once(event, fn)
        self._listeners[event].append((listener, True))
        return listener

    def off(self, event: str, listener: Listener) -> bool:
        """Remove the first registration of ``listener``. Returns whether one was removed."""
        entries = self._listeners.get(event)
        if not entries:
            return False
        for index, (registered, _once) in enumerate(entries):
            if registered is listener:
                del entries[index]
                return True
        return False

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listeners(self, event: str) -> list[Listener]:
        return [listener for listener, _once in self._listeners.get(event, ())]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Call every listener of ``event`` with ``args``.

        A failing listener is logged and does not stop the remaining ones.

        Returns:
            True if the event had listeners
        """
        entries = self._listeners.get(event)
        if not entries:
            return False

        for listener, once in tuple(entries):
            if once:
                self.off(event, listener)
            try:
                result = listener(*args)
            except Exception:
                logger.exception(f"Listener for '{event}' event raised")
                continue
            if asyncio.iscoroutine(result):
                create_managed_task(result, task_name=f"event:{event}")
        return True
