"""
Carton - In-process plugin lifecycle container.

This is the main package that exports the public API for Carton: a
registry that starts plugins concurrently, lets them wait for each other,
bounds startup with a timeout and ends them in reverse activation order.
"""

__version__ = "0.1.0"

from carton.container import (
    DEFAULT_TIMEOUT,
    Container,
    ContainerError,
    DependencyFailedError,
    StartupTimeoutError,
    UnmetDependencyError,
)
from carton.core.services import (
    ServiceError,
    ServiceNotFoundError,
    ServiceRegistry,
    TypeMismatchError,
)
from carton.core.utils import current_plugin
from carton.plugin import (
    FileResolver,
    InvalidDescriptorError,
    LifecycleError,
    MappingResolver,
    ModuleResolver,
    Plugin,
    PluginError,
    PluginState,
    ResolverError,
)

__all__ = [
    "__version__",
    "Container",
    "Plugin",
    "PluginState",
    "ServiceRegistry",
    "current_plugin",
    "DEFAULT_TIMEOUT",
    "FileResolver",
    "ModuleResolver",
    "MappingResolver",
    "ContainerError",
    "UnmetDependencyError",
    "DependencyFailedError",
    "StartupTimeoutError",
    "PluginError",
    "InvalidDescriptorError",
    "LifecycleError",
    "ResolverError",
    "ServiceError",
    "ServiceNotFoundError",
    "TypeMismatchError",
]
