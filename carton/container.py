"""
Container - Plugin registry, dependency waits and lifecycle orchestration.

This module provides the service-locator every plugin attaches to.

Key features:
- Identity-based registration of plugin descriptors
- Dependency waits: a plugin's start may suspend until peers are ACTIVE
- Concurrent startup bounded by a timeout
- Sequential shutdown in reverse activation order

Dependencies are expressed by suspension rather than computed upfront:

    async def start(container):
        await container.await_plugins("db", "cache")
        container.services.provide("api", Api(container.db, container.cache))

Plugins that await each other in a circle deadlock. This is not detected;
the startup timeout reports it, naming the plugins still pending.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from carton.core.services import ServiceRegistry
from carton.core.utils import is_finite_timeout
from carton.plugin.loader import FileResolver, MappingResolver, ResolverError
from carton.plugin.plugin import LifecycleError, Plugin, PluginState

if TYPE_CHECKING:
    from carton.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

Resolver = Callable[[str], Any]


class ContainerError(Exception):
    """Base exception for container-related errors."""

    pass


class UnmetDependencyError(ContainerError):
    """Raised when a plugin waits for a plugin that is not registered."""

    pass


class DependencyFailedError(ContainerError):
    """Raised to waiters when the plugin they wait for fails."""

    def __init__(self, message: str, plugin: Plugin):
        super().__init__(message)
        self.plugin = plugin


class StartupTimeoutError(ContainerError, TimeoutError):
    """Raised when plugins do not all start within the startup timeout."""

    def __init__(self, message: str, pending: list[str]):
        super().__init__(message)
        self.pending = pending


class Container:
    """
    Plugin container and service locator.

    Example:
        container = Container(plugin_directory="plugins")
        container.use("db")
        container.use("api")

        await container.start(timeout=10)
        ...
        await container.end()
    """

    def __init__(
        self,
        plugin_directory: Path | str | None = None,
        resolver: Resolver | Mapping[str, Any] | None = None,
        options: Mapping[str, Mapping[str, Any]] | None = None,
    ):
        """
        Initialize Container.

        Args:
            plugin_directory: Base directory for plugin files (default: <cwd>/plugins)
            resolver: Callable mapping plugin names to descriptors, or a mapping
                of names to descriptors (default: FileResolver over plugin_directory)
            options: Per-plugin option tables, keyed by plugin name
        """
        self.plugin_directory = Path(plugin_directory or Path.cwd() / "plugins")

        if resolver is None:
            resolver = FileResolver(self.plugin_directory)
        elif isinstance(resolver, Mapping):
            resolver = MappingResolver(resolver)
        self._resolver: Resolver = resolver

        self._options = {name: dict(table) for name, table in (options or {}).items()}

        # id(descriptor) -> Plugin; the Plugin keeps the descriptor alive
        self._plugins: dict[int, Plugin] = {}
        # Plugins that completed start, in completion order
        self._started: list[Plugin] = []

        # Services must not hide class or instance attributes
        self._services = ServiceRegistry(reserved={*dir(type(self)), *vars(self)})

    @classmethod
    def from_settings(cls, settings: "Settings", resolver: Resolver | None = None) -> "Container":
        """
        Build a container from loaded settings.

        Args:
            settings: Loaded configuration (see carton.config.load_settings)
            resolver: Optional resolver overriding the file resolver

        Returns:
            A new Container (plugins are not registered yet)
        """
        return cls(
            plugin_directory=settings.plugin_directory,
            resolver=resolver,
            options=settings.plugin_options,
        )

    def __getattr__(self, name: str) -> Any:
        """Look up a provided service by attribute access."""
        if name.startswith("_"):
            raise AttributeError(name)

        services = self.__dict__.get("_services")
        if services is not None and name in services:
            return services.get(name)

        raise AttributeError(
            f"'{type(self).__name__}' object has no attribute or service '{name}'"
        )

    @property
    def services(self) -> ServiceRegistry:
        """The registry plugins provide their services on."""
        return self._services

    @property
    def plugins(self) -> list[Plugin]:
        """All registered plugins in registration order."""
        return list(self._plugins.values())

    @property
    def started(self) -> list[Plugin]:
        """Plugins that are started, in activation order."""
        return list(self._started)

    def states(self) -> dict[str, PluginState]:
        """
        Get the state of every registered plugin.

        Useful after a failed start, which can leave some plugins ACTIVE,
        some FAILED and some still PENDING.
        """
        return {plugin.name: plugin.state for plugin in self._plugins.values()}

    def options(self, name: str) -> dict[str, Any]:
        """
        Get the configured option table for a plugin.

        Args:
            name: Plugin name

        Returns:
            A copy of the options (empty if none are configured)
        """
        return dict(self._options.get(name, {}))

    # Registry
    def resolve(self, name: str) -> Any:
        """
        Resolve a plugin name to its descriptor.

        Raises:
            ResolverError: If the resolver cannot resolve the name
        """
        return self._resolver(name)

    def use(self, name: str) -> Plugin:
        """
        Register a plugin by name.

        Resolves the name with the container's resolver and registers the
        descriptor under that name.

        Args:
            name: The plugin name

        Returns:
            The registered Plugin
        """
        return self.register(self.resolve(name), name=name)

    def register(self, descriptor: Any, name: str | None = None) -> Plugin:
        """
        Register a plugin descriptor.

        Registered plugins are started by Container.start(). Registering the
        same descriptor again returns the existing Plugin.

        Args:
            descriptor: A valid plugin descriptor (see Plugin.is_valid)
            name: Display name for the plugin

        Returns:
            The Plugin for the descriptor

        Raises:
            InvalidDescriptorError: If the descriptor has no callable start
        """
        existing = self.get_plugin(descriptor)
        if existing is not None:
            return existing

        plugin = Plugin(self, descriptor, name=name)
        self._plugins[id(descriptor)] = plugin
        logger.info("Plugin registered: %s", plugin.name)

        return plugin

    def get_plugin(self, descriptor: Any) -> Plugin | None:
        """Get the Plugin registered for a descriptor, or None."""
        plugin = self._plugins.get(id(descriptor))
        if plugin is not None and plugin.descriptor is descriptor:
            return plugin
        return None

    def is_registered(self, descriptor: Any) -> bool:
        """Determine whether the descriptor is registered on this container."""
        return self.get_plugin(descriptor) is not None

    # Dependency waits
    def wait_for(self, descriptor: Any) -> asyncio.Future:
        """
        Get a future for the plugin described by ``descriptor`` to start.

        The future resolves to the Plugin once it is ACTIVE, immediately if it
        already is. It fails with DependencyFailedError once the plugin is
        FAILED, immediately if it already is.

        Args:
            descriptor: The plugin descriptor

        Returns:
            Future resolving to the started Plugin
        """
        future = asyncio.get_running_loop().create_future()

        plugin = self.get_plugin(descriptor)
        if plugin is None:
            future.set_exception(UnmetDependencyError("No plugin registered for given descriptor"))
            return future

        if plugin.state is PluginState.ACTIVE:
            future.set_result(plugin)
            return future

        if plugin.state is PluginState.FAILED:
            future.set_exception(_dependency_failed(plugin, plugin.error))
            return future

        def on_start() -> None:
            if not future.done():
                future.set_result(plugin)

        def on_fail(error: BaseException) -> None:
            if not future.done():
                future.set_exception(_dependency_failed(plugin, error))

        def detach(_: asyncio.Future) -> None:
            plugin.off("start", on_start).off("fail", on_fail)

        plugin.once("start", on_start).once("fail", on_fail)
        future.add_done_callback(detach)

        return future

    async def await_plugins(self, *names: str) -> list[Plugin]:
        """
        Wait for one or more plugins to start.

        Meant to be awaited inside a plugin's start to suspend it until its
        dependencies are ACTIVE. All names are checked before anything is
        awaited. Fails as soon as any of the plugins fails.

        Args:
            *names: Plugin names, resolved with the container's resolver

        Returns:
            The started Plugins, in the order of ``names``

        Raises:
            UnmetDependencyError: If a name does not resolve to a registered plugin
            DependencyFailedError: If one of the plugins fails
        """
        descriptors = []
        for name in names:
            try:
                descriptor = self.resolve(name)
            except ResolverError as e:
                raise UnmetDependencyError(f"Failed to meet a dependency on '{name}': {e}") from e

            if not self.is_registered(descriptor):
                raise UnmetDependencyError(
                    f"Failed to meet a dependency on '{name}': plugin is not registered"
                )
            descriptors.append(descriptor)

        return list(await asyncio.gather(*(self.wait_for(d) for d in descriptors)))

    # Orchestration
    async def start(self, timeout: Any = DEFAULT_TIMEOUT) -> None:
        """
        Start all registered plugins concurrently.

        Every plugin is appended to the activation order the moment its own
        start completes. Plugins still running when another one fails, or
        when the timeout fires, are not cancelled.

        Args:
            timeout: Seconds the plugins are given to start. None, negative,
                non-numeric or infinite values disable the timeout.

        Raises:
            LifecycleError: If a plugin is already ACTIVE or PENDING
            StartupTimeoutError: If the timeout is reached
            Exception: The first error raised by a plugin's start
        """
        plugins = list(self._plugins.values())

        busy = [p.name for p in plugins if p.state in (PluginState.ACTIVE, PluginState.PENDING)]
        if busy:
            raise LifecycleError(f"Plugins already running or starting: {', '.join(busy)}")

        logger.info("Starting %d plugin(s)", len(plugins))

        activations = [self._activate(plugin, plugin.start()) for plugin in plugins]
        aggregate = asyncio.gather(*activations)

        # asyncio.wait never cancels the aggregate, only stops waiting
        try:
            done, _ = await asyncio.wait(
                {aggregate}, timeout=timeout if is_finite_timeout(timeout) else None
            )
        except asyncio.CancelledError:
            aggregate.add_done_callback(_report_late_failure)
            raise

        if aggregate not in done:
            aggregate.add_done_callback(_report_late_failure)
            pending = [p.name for p in plugins if p.state is PluginState.PENDING]
            raise StartupTimeoutError(
                f"Startup timed out after {timeout}s. This can happen if a deadlock is "
                f"created by several plugins all awaiting each other in a circle. "
                f"Still pending: {', '.join(pending) or 'none'}",
                pending,
            )

        aggregate.result()
        logger.info("All plugins started: %s", ", ".join(p.name for p in self._started))

    async def _activate(self, plugin: Plugin, task: asyncio.Task) -> None:
        await task
        self._started.append(plugin)

    async def end(self) -> None:
        """
        End all started plugins, one at a time, in reverse activation order.

        A plugin leaves the activation order only once it has ended. If a
        plugin fails to end, the error propagates and the remaining plugins
        are left running; calling end() again retries from that plugin.
        Plugins that are no longer ACTIVE (e.g. ended directly through
        Plugin.end()) are dropped from the activation order without ending.

        Raises:
            Exception: The first error raised by a plugin's end
        """
        logger.info("Ending %d plugin(s)", len(self._started))

        while self._started:
            plugin = self._started[-1]
            if plugin.state is not PluginState.ACTIVE:
                logger.debug("Plugin %s is %s, skipping end", plugin.name, plugin.state.value)
                self._started.pop()
                continue

            await plugin.end()
            self._started.pop()

        logger.info("All plugins ended")

    def __repr__(self) -> str:
        return f"Container({self.plugin_directory}, plugins={[p.name for p in self.plugins]})"


def _dependency_failed(plugin: Plugin, error: BaseException | None) -> DependencyFailedError:
    exc = DependencyFailedError(f"Dependency '{plugin.name}' failed to start: {error!r}", plugin)
    exc.__cause__ = error
    return exc


def _report_late_failure(aggregate: asyncio.Future) -> None:
    """Retrieve and log a startup failure nobody is waiting for anymore."""
    if aggregate.cancelled():
        return
    error = aggregate.exception()
    if error is not None:
        logger.warning("Plugin startup failed after the startup timeout or cancellation: %r", error)
