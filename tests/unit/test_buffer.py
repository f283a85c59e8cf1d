"""
Unit tests for the operation buffer.
"""

import asyncio

import pytest

from mdb_odm.core.buffer import OperationBuffer
from mdb_odm.exceptions import BufferTimeoutError, InitializationError


class TestOperationBuffer:
    """Test queueing, replay and rejection."""

    @pytest.mark.asyncio
    async def test_replay_runs_in_fifo_order(self):
        """Test operations start in the order they were issued."""
        buffer = OperationBuffer("test")
        started = []

        def make_operation(index):
            async def operation():
                started.append(index)
                return index

            return operation

        futures = [buffer.enqueue(make_operation(i), f"op{i}()") for i in range(5)]
        assert len(buffer) == 5
        assert buffer.pending == [f"op{i}()" for i in range(5)]

        assert buffer.replay() == 5
        results = await asyncio.gather(*futures)

        assert started == [0, 1, 2, 3, 4]
        assert results == [0, 1, 2, 3, 4]
        assert len(buffer) == 0

    @pytest.mark.asyncio
    async def test_reject_all_uses_same_error(self):
        """Test every queued operation fails with the same error object."""
        buffer = OperationBuffer("test")
        error = InitializationError("Failed initial connection to MongoDB")

        async def operation():
            return None

        futures = [buffer.enqueue(operation, f"op{i}()") for i in range(3)]
        assert buffer.reject_all(error) == 3

        for future in futures:
            with pytest.raises(InitializationError) as exc_info:
                await future
            assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_operation_failure_propagates(self):
        """Test an operation's own error reaches its caller on replay."""
        buffer = OperationBuffer("test")

        async def operation():
            raise ValueError("duplicate key")

        future = buffer.enqueue(operation, "users.insert_one()")
        buffer.replay()

        with pytest.raises(ValueError, match="duplicate key"):
            await future

    @pytest.mark.asyncio
    async def test_timeout_rejects_operation(self):
        """Test an operation left queued past its timeout fails on its own."""
        buffer = OperationBuffer("test")

        async def operation():
            return "never"

        future = buffer.enqueue(operation, "users.find_one()", timeout_ms=10)

        with pytest.raises(BufferTimeoutError) as exc_info:
            await future

        assert "users.find_one()" in str(exc_info.value)
        assert "10ms" in str(exc_info.value)
        assert len(buffer) == 0

    @pytest.mark.asyncio
    async def test_replay_cancels_timers(self):
        """Test replayed operations are not timed out afterwards."""
        buffer = OperationBuffer("test")

        async def operation():
            await asyncio.sleep(0.05)
            return "ok"

        future = buffer.enqueue(operation, "users.find_one()", timeout_ms=20)
        buffer.replay()

        assert await future == "ok"

    @pytest.mark.asyncio
    async def test_cancelled_operations_are_skipped(self):
        """Test operations whose caller gave up are not run."""
        buffer = OperationBuffer("test")
        ran = []

        async def operation():
            ran.append(1)

        future = buffer.enqueue(operation, "users.find_one()")
        future.cancel()

        assert buffer.replay() == 0
        await asyncio.sleep(0)
        assert ran == []
