"""
Tests for EventEmitter - Plugin lifecycle notifications.

This test suite covers:
1. Emission order (priority, registration tie-breaking)
2. One-shot listeners
3. Listener removal
4. Failing listeners
"""

import pytest

from carton.core.emitter import EventEmitter


class TestEmit:
    """Test EventEmitter.emit()."""

    def test_passes_arguments(self):
        """Listeners receive the emitted arguments."""
        emitter = EventEmitter()
        received = []
        emitter.on("fail", lambda error: received.append(error))

        error = RuntimeError("boom")
        emitter.emit("fail", error)

        assert received == [error]

    def test_priority_order(self):
        """Higher priority listeners run first."""
        emitter = EventEmitter()
        order = []
        emitter.on("start", lambda: order.append("low"), priority=1)
        emitter.on("start", lambda: order.append("high"), priority=10)
        emitter.on("start", lambda: order.append("default"))

        emitter.emit("start")

        assert order == ["high", "low", "default"]

    def test_registration_order_breaks_ties(self):
        """Listeners with equal priority run in registration order."""
        emitter = EventEmitter()
        order = []
        for name in ("first", "second", "third"):
            emitter.on("start", lambda name=name: order.append(name))

        emitter.emit("start")

        assert order == ["first", "second", "third"]

    def test_returns_number_called(self):
        """emit() reports how many listeners ran."""
        emitter = EventEmitter()
        emitter.on("start", lambda: None)
        emitter.once("start", lambda: None)

        assert emitter.emit("start") == 2
        assert emitter.emit("start") == 1
        assert emitter.emit("unknown") == 0

    def test_failing_listener_does_not_stop_others(self):
        """A listener error is reported as a warning; the rest still run."""
        emitter = EventEmitter()
        order = []

        def failing():
            order.append("failing")
            raise ValueError("listener error")

        emitter.on("end", failing, priority=10)
        emitter.on("end", lambda: order.append("next"))

        with pytest.warns(RuntimeWarning, match="Listener failed for 'end'"):
            emitter.emit("end")

        assert order == ["failing", "next"]


class TestOnce:
    """Test one-shot listeners."""

    def test_called_once(self):
        """A one-shot listener runs for the next emission only."""
        emitter = EventEmitter()
        calls = []
        emitter.once("start", lambda: calls.append(1))

        emitter.emit("start")
        emitter.emit("start")

        assert calls == [1]
        assert emitter.listener_count("start") == 0

    def test_reentrant_emit(self):
        """Re-emitting from a listener does not call one-shot listeners twice."""
        emitter = EventEmitter()
        calls = []

        def listener():
            calls.append(1)
            emitter.emit("start")

        emitter.once("start", listener)
        emitter.emit("start")

        assert calls == [1]


class TestOff:
    """Test listener removal."""

    def test_remove_one(self):
        """off() with a callback removes only that listener."""
        emitter = EventEmitter()

        def keep():
            pass

        def drop():
            pass

        emitter.on("start", keep)
        emitter.once("start", drop)

        assert emitter.off("start", drop) == 1
        assert emitter.listeners("start") == [keep]

    def test_remove_all(self):
        """off() without a callback removes every listener of the event."""
        emitter = EventEmitter()
        emitter.on("start", lambda: None)
        emitter.on("start", lambda: None)
        emitter.on("end", lambda: None)

        assert emitter.off("start") == 2
        assert emitter.listener_count("start") == 0
        assert emitter.listener_count("end") == 1

    def test_remove_unknown(self):
        """Removing from an unknown event removes nothing."""
        assert EventEmitter().off("start", print) == 0

    def test_rejects_non_callable(self):
        """Listeners must be callable."""
        with pytest.raises(TypeError, match="must be callable"):
            EventEmitter().on("start", "not callable")
