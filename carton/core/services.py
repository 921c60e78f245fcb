"""
Service Registry - Named services exposed by plugins on their container.

Plugins publish what they build (connections, listeners, caches) here
instead of assigning arbitrary attributes on the shared container. Every
mutation goes through provide()/withdraw(), is validated and logged with
the plugin that made it, so the shared surface stays auditable.

Key features:
- Type-checked lookup via get(name, type_)
- Provider tracking through the current-plugin context
- Name validation (identifiers only, no container attribute shadowing)
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from carton.core.utils import current_plugin

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceError(Exception):
    """Base exception for service-related errors."""

    pass


class ServiceNotFoundError(ServiceError, LookupError):
    """Raised when a service name is not provided."""

    pass


class TypeMismatchError(ServiceError, TypeError):
    """Raised when get() is called with a type the service does not match."""

    pass


@dataclass
class ServiceEntry:
    """
    A provided service.

    Attributes:
        name: Service name
        value: The service object
        provider: Name of the plugin that provided it (None outside a plugin)
    """

    name: str
    value: Any
    provider: str | None = None


class ServiceRegistry:
    """
    Registry of named services.

    Example:
        def start(container):
            container.services.provide("db", Database())

        def end(container):
            container.services.withdraw("db").close()
    """

    def __init__(self, reserved: Iterable[str] = ()):
        """
        Initialize ServiceRegistry.

        Args:
            reserved: Names that must not be used (e.g. attributes of the owner)
        """
        self._entries: dict[str, ServiceEntry] = {}
        self._reserved = frozenset(reserved)

    def _validate_name(self, name: str) -> None:
        if not isinstance(name, str) or not name.isidentifier():
            raise ServiceError(f"Invalid service name: {name!r}")
        if name.startswith("_"):
            raise ServiceError(f"Service names must not start with '_': {name!r}")
        if name in self._reserved:
            raise ServiceError(f"Service name {name!r} is reserved")

    def provide(self, name: str, service: Any, replace: bool = False) -> None:
        """
        Provide a service under ``name``.

        Args:
            name: Service name (a Python identifier)
            service: The service object
            replace: Allow overwriting an existing service

        Raises:
            ServiceError: If the name is invalid, or taken and replace is False
        """
        self._validate_name(name)

        existing = self._entries.get(name)
        if existing is not None and not replace:
            owner = existing.provider or "<outside plugin>"
            raise ServiceError(f"Service '{name}' is already provided by {owner}")

        plugin = current_plugin()
        provider = plugin.name if plugin is not None else None
        self._entries[name] = ServiceEntry(name=name, value=service, provider=provider)

        logger.info(
            "Service '%s' %s by %s",
            name,
            "replaced" if existing is not None else "provided",
            provider or "<outside plugin>",
        )

    def get(self, name: str, type_: type[T] | None = None) -> T:
        """
        Get a service.

        Args:
            name: Service name
            type_: Expected type of the service (optional)

        Returns:
            The service object

        Raises:
            ServiceNotFoundError: If no service is provided under ``name``
            TypeMismatchError: If the service is not an instance of ``type_``
        """
        entry = self._entries.get(name)
        if entry is None:
            raise ServiceNotFoundError(f"Service not provided: {name}")

        if type_ is not None and not isinstance(entry.value, type_):
            raise TypeMismatchError(
                f"Service '{name}' is {type(entry.value).__name__}, "
                f"expected {type_.__name__}"
            )

        return entry.value

    def withdraw(self, name: str) -> Any:
        """
        Remove a service and return it.

        Raises:
            ServiceNotFoundError: If no service is provided under ``name``
        """
        entry = self._entries.pop(name, None)
        if entry is None:
            raise ServiceNotFoundError(f"Service not provided: {name}")

        plugin = current_plugin()
        logger.info(
            "Service '%s' withdrawn by %s",
            name,
            plugin.name if plugin is not None else "<outside plugin>",
        )
        return entry.value

    def provider_of(self, name: str) -> str | None:
        """
        Get the name of the plugin that provided a service.

        Raises:
            ServiceNotFoundError: If no service is provided under ``name``
        """
        entry = self._entries.get(name)
        if entry is None:
            raise ServiceNotFoundError(f"Service not provided: {name}")
        return entry.provider

    def names(self) -> list[str]:
        """List provided service names in provision order."""
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, name: str) -> Any:
        return self.get(name)

    def __repr__(self) -> str:
        return f"ServiceRegistry({self.names()})"
