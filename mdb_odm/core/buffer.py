"""
Operation buffer.

Operations issued while a connection is not ready are parked here and
replayed, in the order they were issued, once the connection becomes ready.
If the connection fails for good, every parked operation is rejected with the
same error. Each parked operation may carry a timeout after which it fails on
its own with ``BufferTimeoutError``.
"""

import asyncio
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ..exceptions import BufferTimeoutError
from ..observability import increment

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]


@dataclass(eq=False)
class BufferedOperation:
    """A deferred operation and the future its caller awaits."""

    operation: Operation
    future: "asyncio.Future[Any]"
    description: str
    sequence: int
    enqueued_at: float = field(default_factory=time.monotonic)
    timer: Optional[asyncio.TimerHandle] = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class OperationBuffer:
    """FIFO queue of operations waiting for a connection."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._queue: deque[BufferedOperation] = deque()
        self._sequence = itertools.count()
        self._running: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def pending(self) -> list[str]:
        """Descriptions of queued operations, oldest first."""
        return [entry.description for entry in self._queue]

    def enqueue(
        self, operation: Operation, description: str, timeout_ms: Optional[int] = None
    ) -> "asyncio.Future[Any]":
        """
        Park an operation until ``replay()`` or ``reject_all()``.

        Args:
            operation: Zero-argument callable returning the awaitable to run
            description: Human readable name, e.g. ``users.find_one()``
            timeout_ms: Fail the operation after this many milliseconds;
                None waits indefinitely

        Returns:
            Future resolved with the operation's result
        """
        loop = asyncio.get_running_loop()
        entry = BufferedOperation(
            operation=operation,
            future=loop.create_future(),
            description=description,
            sequence=next(self._sequence),
        )
        if timeout_ms is not None:
            entry.timer = loop.call_later(timeout_ms / 1000, self._expire, entry, timeout_ms)
        self._queue.append(entry)
        increment("buffer.enqueued")
        logger.debug(f"Buffered {description} on '{self.name}' ({len(self._queue)} pending)")
        return entry.future

    def _expire(self, entry: BufferedOperation, timeout_ms: int) -> None:
        entry.timer = None
        try:
            self._queue.remove(entry)
        except ValueError:
            return
        if not entry.future.done():
            entry.future.set_exception(BufferTimeoutError(entry.description, timeout_ms))
            increment("buffer.timed_out")
            logger.warning(f"{entry.description} timed out after {timeout_ms}ms in buffer '{self.name}'")

    def replay(self) -> int:
        """
        Run every queued operation in FIFO order.

        Operations whose caller already gave up (cancelled future) are
        dropped.

        Returns:
            Number of operations started
        """
        entries = list(self._queue)
        self._queue.clear()
        started = 0
        for entry in entries:
            entry.cancel_timer()
            if entry.future.done():
                continue
            task = asyncio.ensure_future(self._run(entry))
            self._running.add(task)
            task.add_done_callback(self._running.discard)
            started += 1
        increment("buffer.replayed", started)
        if started:
            logger.debug(f"Replaying {started} buffered operation(s) on '{self.name}'")
        return started

    async def _run(self, entry: BufferedOperation) -> None:
        try:
            result = await entry.operation()
        except asyncio.CancelledError:
            entry.future.cancel()
            raise
        except Exception as e:
            if not entry.future.done():
                entry.future.set_exception(e)
        else:
            if not entry.future.done():
                entry.future.set_result(result)

    def reject_all(self, error: BaseException) -> int:
        """
        Reject every queued operation with ``error``.

        Returns:
            Number of operations rejected
        """
        entries = list(self._queue)
        self._queue.clear()
        rejected = 0
        for entry in entries:
            entry.cancel_timer()
            if not entry.future.done():
                entry.future.set_exception(error)
                rejected += 1
        increment("buffer.rejected", rejected)
        return rejected
