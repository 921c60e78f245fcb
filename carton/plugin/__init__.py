"""
Carton Plugin System - Plugin lifecycle state and name resolution.

This module handles:
- The per-plugin lifecycle state machine
- Lifecycle notifications (start, fail, end)
- Resolving plugin names to descriptors (files, modules, mappings)
"""

from carton.plugin.loader import (
    FileResolver,
    LoaderError,
    MappingResolver,
    ModuleResolver,
    PluginNotFoundError,
    ResolverError,
)
from carton.plugin.plugin import (
    InvalidDescriptorError,
    LifecycleError,
    Plugin,
    PluginError,
    PluginState,
)

__all__ = [
    "Plugin",
    "PluginState",
    "PluginError",
    "InvalidDescriptorError",
    "LifecycleError",
    "FileResolver",
    "ModuleResolver",
    "MappingResolver",
    "ResolverError",
    "PluginNotFoundError",
    "LoaderError",
]
