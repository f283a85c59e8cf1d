"""
Unit tests for the lifecycle event emitter.
"""

import asyncio

import pytest

from mdb_odm.core.events import EventEmitter


class TestEventEmitter:
    """Test listener registration and emission."""

    def test_listeners_run_in_registration_order(self):
        """Test listeners receive arguments in order."""
        emitter = EventEmitter()
        calls = []
        emitter.on("model", lambda m: calls.append(("first", m)))
        emitter.on("model", lambda m: calls.append(("second", m)))

        assert emitter.emit("model", "User") is True
        assert calls == [("first", "User"), ("second", "User")]

    def test_emit_without_listeners(self):
        """Test emitting an event nobody listens to."""
        assert EventEmitter().emit("open") is False

    def test_once_listener_runs_once(self):
        """Test once() listeners are removed after the first call."""
        emitter = EventEmitter()
        calls = []
        emitter.once("connected", lambda: calls.append(1))

        emitter.emit("connected")
        emitter.emit("connected")

        assert calls == [1]
        assert emitter.listener_count("connected") == 0

    def test_decorator_form(self):
        """Test on() used as a decorator keeps the function."""
        emitter = EventEmitter()

        @emitter.on("close")
        def on_close(force):
            return force

        assert on_close(True) is True
        assert emitter.listeners("close") == [on_close]

    def test_off_removes_listener(self):
        """Test off() detaches a listener."""
        emitter = EventEmitter()
        calls = []

        def listener():
            calls.append(1)

        emitter.on("open", listener)
        assert emitter.off("open", listener) is True
        assert emitter.off("open", listener) is False
        emitter.emit("open")
        assert calls == []

    def test_failing_listener_does_not_stop_others(self):
        """Test a raising listener is logged and the rest still run."""
        emitter = EventEmitter()
        calls = []

        def broken():
            raise RuntimeError("listener bug")

        emitter.on("connected", broken)
        emitter.on("connected", lambda: calls.append("ok"))

        emitter.emit("connected")
        assert calls == ["ok"]

    def test_remove_all_listeners(self):
        """Test clearing one event or all events."""
        emitter = EventEmitter()
        emitter.on("a", lambda: None)
        emitter.on("b", lambda: None)

        emitter.remove_all_listeners("a")
        assert emitter.listener_count("a") == 0
        assert emitter.listener_count("b") == 1

        emitter.remove_all_listeners()
        assert emitter.listener_count("b") == 0

    @pytest.mark.asyncio
    async def test_coroutine_listener_is_scheduled(self):
        """Test async listeners run on the event loop."""
        emitter = EventEmitter()
        done = asyncio.Event()

        async def listener(value):
            assert value == 42
            done.set()

        emitter.on("error", listener)
        emitter.emit("error", 42)

        await asyncio.wait_for(done.wait(), timeout=1)
