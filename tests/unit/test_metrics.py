"""
Unit tests for metrics collection and contextual logging.

Tests cover:
- Thread-safety under concurrent access
- Bounded storage of timing series
- Buffer counters
- The timed_operation decorator
- Connection context on log records
"""

import asyncio
import logging
import threading

import pytest

from mdb_odm.core.buffer import OperationBuffer
from mdb_odm.observability import (MetricsCollector, connection_context,
                                   get_logger, get_logging_context,
                                   get_metrics_collector, log_event,
                                   timed_operation)


class TestMetricsCollectorThreadSafety:
    """Test thread-safety of metrics collection."""

    def test_concurrent_record_operation(self):
        """Test that concurrent record_operation calls are thread-safe."""
        collector = MetricsCollector()
        num_threads = 8
        operations_per_thread = 50
        barrier = threading.Barrier(num_threads)

        def record_operations(thread_id: int):
            barrier.wait()
            for i in range(operations_per_thread):
                collector.record_operation(
                    "connection.open", duration_ms=1.0 + i, success=True, thread_id=thread_id
                )
                collector.increment("buffer.enqueued")

        threads = [threading.Thread(target=record_operations, args=(i,)) for i in range(num_threads)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        expected = num_threads * operations_per_thread
        assert collector.get_operation_count("connection.open") == expected
        assert collector.counter("buffer.enqueued") == expected


class TestMetricsCollectorStorage:
    """Test bounded storage and aggregation."""

    def test_least_recent_series_is_dropped(self):
        """Test that the series recorded least recently goes first at capacity."""
        collector = MetricsCollector(max_series=2)
        collector.record_operation("a", 1.0)
        collector.record_operation("b", 1.0)
        collector.record_operation("a", 1.0)
        collector.record_operation("c", 1.0)

        assert set(collector.get_metrics()["operations"]) == {"a", "c"}

    def test_tags_split_series(self):
        """Test each tag set gets its own series and counts still add up."""
        collector = MetricsCollector()
        collector.record_operation("connection.open", 5.0, success=False, db_name="a")
        collector.record_operation("connection.open", 7.0, success=True, db_name="b")

        operations = collector.get_metrics("connection.")["operations"]
        assert set(operations) == {"connection.open{db_name=a}", "connection.open{db_name=b}"}
        assert collector.get_operation_count("connection.open") == 2
        assert collector.get_error_count("connection.open") == 1

    def test_snapshot(self):
        collector = MetricsCollector()
        collector.record_operation("connection.close", 3.0)
        collector.record_operation("connection.close", 5.0)

        series = collector.get_metrics()["operations"]["connection.close"]
        assert series["calls"] == 2
        assert series["mean_ms"] == 4.0
        assert series["fastest_ms"] == 3.0
        assert series["slowest_ms"] == 5.0

    def test_reset(self):
        collector = MetricsCollector()
        collector.record_operation("connection.open", 1.0)
        collector.increment("buffer.replayed", 3)

        collector.reset()

        assert collector.get_metrics() == {"operations": {}, "counters": {}}


class TestBufferCounters:
    """Test the operation buffer reports to the global collector."""

    @pytest.mark.asyncio
    async def test_buffer_counters(self):
        collector = get_metrics_collector()
        collector.reset()
        buffer = OperationBuffer("metrics")

        async def operation():
            return None

        replayed = [buffer.enqueue(operation, "a.find_one()") for _ in range(2)]
        buffer.replay()
        await asyncio.gather(*replayed)
        rejected = buffer.enqueue(operation, "a.find_one()")
        buffer.reject_all(RuntimeError("gone"))
        with pytest.raises(RuntimeError):
            await rejected

        assert collector.counter("buffer.enqueued") == 3
        assert collector.counter("buffer.replayed") == 2
        assert collector.counter("buffer.rejected") == 1


class TestTimedOperation:
    """Test the timed_operation decorator."""

    @pytest.mark.asyncio
    async def test_records_success_and_failure(self):
        """Test the decorator records both outcomes."""
        get_metrics_collector().reset()

        @timed_operation("test.timed")
        async def work(fail: bool):
            if fail:
                raise ValueError("boom")
            return "done"

        assert await work(False) == "done"
        with pytest.raises(ValueError):
            await work(True)

        collector = get_metrics_collector()
        assert collector.get_operation_count("test.timed") == 2
        assert collector.get_error_count("test.timed") == 1

    def test_rejects_sync_functions(self):
        """Test that only coroutine functions can be decorated."""
        with pytest.raises(TypeError):

            @timed_operation("test.sync")
            def work():
                return None


class TestConnectionContext:
    """Test connection fields on log records."""

    def test_context_is_scoped_to_block(self, odm):
        conn = odm.connection

        with connection_context(conn, phase="initial connection"):
            assert get_logging_context()["connection_id"] == conn.id
            assert get_logging_context()["phase"] == "initial connection"
            with connection_context(conn, model_name="User"):
                assert get_logging_context()["phase"] == "initial connection"
                assert get_logging_context()["model_name"] == "User"
            assert "model_name" not in get_logging_context()

        assert get_logging_context() == {}

    def test_records_carry_context(self, odm, caplog):
        logger = get_logger("mdb_odm.tests")

        with caplog.at_level(logging.INFO, logger="mdb_odm.tests"):
            with connection_context(odm.connection):
                log_event(logger, "MongoDB connection closed", duration_ms=1.234, force=True)

        record = caplog.records[-1]
        assert record.getMessage() == "MongoDB connection closed (1.23ms)"
        assert record.connection_id == odm.connection.id
        assert record.duration_ms == 1.23
        assert record.force is True
