"""
Event Emitter - Per-plugin lifecycle notifications.

This module implements a small observer primitive used by every Plugin to
announce its transitions (``start``, ``fail``, ``end``).

Key features:
- Persistent and one-shot listeners
- Priority-based execution (higher priority = earlier execution)
- Registration order as tie-breaker
- Failing listeners never interrupt the remaining listeners
"""

import logging
import warnings
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class Listener:
    """
    Represents a registered event listener.

    Attributes:
        callback: The listener function
        priority: Higher priority executes first
        registration_order: Tie-breaker for same priority (lower = earlier)
        once: Whether the listener is removed after its first call
    """

    callback: Callable
    priority: int
    registration_order: int
    once: bool = False


class EventEmitter:
    """
    Synchronous event emitter.

    Listeners are plain callables invoked with the emitted arguments.
    """

    def __init__(self):
        # event name -> listeners in registration order
        self._listeners: dict[str, list[Listener]] = {}

        # Registration order counter for tie-breaking
        self._registration_counter = 0

    def _next_registration_order(self) -> int:
        """Get next registration order number."""
        order = self._registration_counter
        self._registration_counter += 1
        return order

    def _add(self, event: str, callback: Callable, priority: int, once: bool) -> None:
        if not callable(callback):
            raise TypeError(f"Listener for '{event}' must be callable, got {callback!r}")

        listener = Listener(
            callback=callback,
            priority=priority,
            registration_order=self._next_registration_order(),
            once=once,
        )
        self._listeners.setdefault(event, []).append(listener)

    def on(self, event: str, callback: Callable, priority: int = 0) -> None:
        """
        Register a listener called on every emission of ``event``.

        Args:
            event: Event name
            callback: Listener function
            priority: Execution priority (higher = earlier)
        """
        self._add(event, callback, priority, once=False)

    def once(self, event: str, callback: Callable, priority: int = 0) -> None:
        """
        Register a listener called on the next emission of ``event`` only.

        Args:
            event: Event name
            callback: Listener function
            priority: Execution priority (higher = earlier)
        """
        self._add(event, callback, priority, once=True)

    def off(self, event: str, callback: Callable | None = None) -> int:
        """
        Remove listeners.

        Args:
            event: Event name
            callback: Listener to remove; all listeners of ``event`` if None

        Returns:
            Number of listeners removed
        """
        listeners = self._listeners.get(event, [])
        if callback is None:
            kept = []
        else:
            kept = [listener for listener in listeners if listener.callback != callback]

        removed = len(listeners) - len(kept)
        if kept:
            self._listeners[event] = kept
        else:
            self._listeners.pop(event, None)
        return removed

    def listeners(self, event: str) -> list[Callable]:
        """Get the listener callbacks of ``event`` in execution order."""
        ordered = sorted(
            self._listeners.get(event, []),
            key=lambda l: (-l.priority, l.registration_order),
        )
        return [listener.callback for listener in ordered]

    def listener_count(self, event: str) -> int:
        """Get the number of listeners registered for ``event``."""
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args) -> int:
        """
        Emit an event (uninterruptible notification).

        All listeners execute in priority order. One-shot listeners are
        detached before any listener runs, so re-entrant emissions cannot
        call them twice.

        Args:
            event: Event name
            *args: Arguments passed to every listener

        Returns:
            Number of listeners called
        """
        listeners = sorted(
            self._listeners.get(event, []),
            key=lambda l: (-l.priority, l.registration_order),
        )
        if not listeners:
            return 0

        # Detach one-shot listeners first
        remaining = [l for l in self._listeners[event] if not l.once]
        if remaining:
            self._listeners[event] = remaining
        else:
            del self._listeners[event]

        for listener in listeners:
            try:
                listener.callback(*args)
            except Exception as e:
                # Log but don't stop execution
                logger.warning("Listener %r failed for '%s': %s", listener.callback, event, e)
                warnings.warn(
                    f"Listener failed for '{event}': {e}",
                    RuntimeWarning,
                    stacklevel=2,
                )

        return len(listeners)
