"""
Plugin - Lifecycle state machine around a single plugin descriptor.

A descriptor is any object with a callable ``start(container)`` and an
optional ``end(container)``. Both may return a plain value, an awaitable
or a generator routine; the result is normalized by carton.core.utils.

State transitions:
    INACTIVE -> PENDING -> ACTIVE | FAILED      (start)
    FAILED   -> PENDING -> ACTIVE | FAILED      (start again)
    ACTIVE   -> PENDING -> INACTIVE | ACTIVE    (end, failed end)

Events:
    start: the plugin has started (no payload)
    fail:  start or end failed (error payload)
    end:   the plugin has ended (no payload)
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from carton.core.emitter import EventEmitter
from carton.core.utils import _set_current_plugin, invoke

if TYPE_CHECKING:
    from carton.container import Container

logger = logging.getLogger(__name__)


class PluginError(Exception):
    """Base exception for plugin-related errors."""

    pass


class InvalidDescriptorError(PluginError, TypeError):
    """Raised when an object is not a valid plugin descriptor."""

    pass


class LifecycleError(PluginError):
    """Raised when start/end is called in a state that does not allow it."""

    pass


class PluginState(Enum):
    """Plugin state enumeration."""

    INACTIVE = "inactive"
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


class Plugin:
    """
    A registered plugin.

    Plugins are created by Container.register(); the container is passed to
    every descriptor call so the plugin can provide and look up services.

    Attributes:
        container: The Container that created this plugin
        descriptor: The wrapped descriptor
        name: Display name used in logs and errors
        state: Current PluginState
        error: Last error raised by the descriptor (None after success)
    """

    def __init__(self, container: "Container", descriptor: Any, name: str | None = None):
        """
        Initialize Plugin.

        Args:
            container: The container the plugin attaches its services to
            descriptor: A valid plugin descriptor (see Plugin.is_valid)
            name: Display name; derived from the descriptor if omitted

        Raises:
            TypeError: If container is not a Container
            InvalidDescriptorError: If the descriptor is not valid
        """
        from carton.container import Container

        if not isinstance(container, Container):
            raise TypeError(f"Expected container to be a Container, got {type(container).__name__}")

        if not Plugin.is_valid(descriptor):
            raise InvalidDescriptorError(
                "Given plugin descriptor is not valid. "
                "A descriptor must be an object with a callable start attribute."
            )

        self.container = container
        self.descriptor = descriptor
        self.name = name or _describe(descriptor)
        self.state = PluginState.INACTIVE
        self.error: BaseException | None = None
        self._emitter = EventEmitter()

    @staticmethod
    def is_valid(descriptor: Any) -> bool:
        """
        Determine if the given object is a valid plugin descriptor.

        Classes are rejected: register an instance instead.
        """
        if descriptor is None or inspect.isclass(descriptor):
            return False
        return callable(getattr(descriptor, "start", None))

    # Observers
    def on(self, event: str, callback: Callable, priority: int = 0) -> "Plugin":
        """Subscribe to every occurrence of ``event``. Returns self for chaining."""
        self._emitter.on(event, callback, priority)
        return self

    def once(self, event: str, callback: Callable, priority: int = 0) -> "Plugin":
        """Subscribe to the next occurrence of ``event``. Returns self for chaining."""
        self._emitter.once(event, callback, priority)
        return self

    def off(self, event: str, callback: Callable | None = None) -> "Plugin":
        """Unsubscribe from ``event``. Returns self for chaining."""
        self._emitter.off(event, callback)
        return self

    def _transition(self, state: PluginState) -> None:
        logger.debug("Plugin %s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state

    # Lifecycle
    def start(self) -> asyncio.Task:
        """
        Start the plugin.

        Calls the descriptor's start with the container. The state becomes
        PENDING immediately; the returned task completes once the
        descriptor's result has settled.

        Returns:
            Task resolving to the descriptor's result

        Raises:
            LifecycleError: If the plugin is already ACTIVE or PENDING
            RuntimeError: If called without a running event loop
        """
        if self.state is PluginState.ACTIVE:
            raise LifecycleError(f"Plugin '{self.name}' is already running")

        if self.state is PluginState.PENDING:
            raise LifecycleError(f"Plugin '{self.name}' is already starting up")

        loop = asyncio.get_running_loop()
        self._transition(PluginState.PENDING)
        return loop.create_task(self._run_start(), name=f"carton-start-{self.name}")

    async def _run_start(self) -> Any:
        _set_current_plugin(self)

        try:
            result = await invoke(self.descriptor.start, self.container)
        except (Exception, asyncio.CancelledError) as e:
            self._transition(PluginState.FAILED)
            self.error = e
            logger.error("Plugin %s failed to start: %r", self.name, e)
            self._emitter.emit("fail", e)
            raise

        self._transition(PluginState.ACTIVE)
        self.error = None
        logger.info("Plugin %s started", self.name)
        self._emitter.emit("start")
        return result

    def end(self) -> asyncio.Task:
        """
        End the plugin.

        Calls the descriptor's end with the container if it has one. The
        state becomes PENDING immediately. If end fails, the plugin goes back
        to ACTIVE: it is still running.

        Returns:
            Task completing once the descriptor's end has settled

        Raises:
            LifecycleError: If the plugin is not ACTIVE
            RuntimeError: If called without a running event loop
        """
        if self.state is not PluginState.ACTIVE:
            raise LifecycleError(f"Plugin '{self.name}' is not running")

        loop = asyncio.get_running_loop()
        self._transition(PluginState.PENDING)
        return loop.create_task(self._run_end(), name=f"carton-end-{self.name}")

    async def _run_end(self) -> None:
        _set_current_plugin(self)
        end = getattr(self.descriptor, "end", None)

        try:
            if callable(end):
                await invoke(end, self.container)
        except (Exception, asyncio.CancelledError) as e:
            self._transition(PluginState.ACTIVE)
            self.error = e
            logger.error("Plugin %s failed to end: %r", self.name, e)
            self._emitter.emit("fail", e)
            raise

        self._transition(PluginState.INACTIVE)
        self.error = None
        logger.info("Plugin %s ended", self.name)
        self._emitter.emit("end")

    def __repr__(self) -> str:
        return f"Plugin({self.name}, state={self.state.value})"


def _describe(descriptor: Any) -> str:
    """Derive a display name for a descriptor."""
    for attr in ("name", "__name__"):
        value = getattr(descriptor, attr, None)
        if isinstance(value, str) and value:
            return value
    return repr(descriptor)
