"""
Plugin Resolvers.

A resolver maps a plugin name to its descriptor. The container only relies
on resolvers being deterministic and referentially stable: the same name
must always yield the same object, because plugins are registered by
descriptor identity.

Key features:
- FileResolver: path join + importlib loading, with a module cache
- ModuleResolver: importlib.import_module over an optional package
- MappingResolver: in-memory names for embedding and tests
- Reload support for development
"""

import hashlib
import importlib
import importlib.util
import logging
import re
import sys
from collections.abc import Mapping
from pathlib import Path
from types import ModuleType
from typing import Any

logger = logging.getLogger(__name__)


class ResolverError(LookupError):
    """Base exception for resolver-related errors."""

    pass


class PluginNotFoundError(ResolverError):
    """Raised when no plugin exists under the given name."""

    pass


class LoaderError(ResolverError):
    """Raised when a plugin file exists but cannot be loaded."""

    pass


# Module cache: resolved entry point -> module
_module_cache: dict[Path, ModuleType] = {}


def _module_name(entry_point: Path) -> str:
    """Build a unique, importable module name for a plugin file."""
    stem = entry_point.parent.name if entry_point.name == "__init__.py" else entry_point.stem
    slug = re.sub(r"\W", "_", stem)
    # Qualify with a path digest so two plugins named alike never collide
    digest = hashlib.sha1(str(entry_point).encode()).hexdigest()[:12]
    return f"carton_plugin_{slug}_{digest}"


def load_plugin_module(entry_point: Path) -> ModuleType:
    """
    Load a plugin module from a file, using the module cache.

    Args:
        entry_point: Absolute path to a .py file

    Returns:
        Loaded module

    Raises:
        PluginNotFoundError: If the file does not exist
        LoaderError: If loading fails
    """
    if entry_point in _module_cache:
        logger.debug("Plugin module cache hit: %s", entry_point)
        return _module_cache[entry_point]

    if not entry_point.is_file():
        raise PluginNotFoundError(f"Entry point not found: {entry_point}")

    module_name = _module_name(entry_point)

    try:
        spec = importlib.util.spec_from_file_location(module_name, entry_point)

        if spec is None or spec.loader is None:
            raise LoaderError(f"Failed to create module spec for {entry_point}")

        module = importlib.util.module_from_spec(spec)

        # Add to sys.modules before execution
        sys.modules[module_name] = module

        spec.loader.exec_module(module)

    except Exception as e:
        # Clean up sys.modules on failure
        sys.modules.pop(module_name, None)
        if isinstance(e, LoaderError):
            raise
        raise LoaderError(f"Failed to load plugin module {entry_point}: {e}") from e

    _module_cache[entry_point] = module
    logger.debug("Loaded plugin module %s from %s", module_name, entry_point)
    return module


def unload_plugin_module(entry_point: Path) -> None:
    """
    Unload a plugin module and clear it from the cache.

    Args:
        entry_point: Absolute path the module was loaded from
    """
    module = _module_cache.pop(entry_point, None)
    if module is not None:
        sys.modules.pop(module.__name__, None)


def is_module_cached(entry_point: Path) -> bool:
    """Check if the module for a plugin file is cached."""
    return entry_point in _module_cache


def clear_cache() -> None:
    """Clear all cached plugin modules."""
    for entry_point in list(_module_cache):
        unload_plugin_module(entry_point)


class FileResolver:
    """
    Resolve plugin names to modules loaded from a plugin directory.

    ``name`` is joined onto the directory like a relative path, so both
    ``"db"`` and ``"vendor/db"`` work. A name resolves to ``<name>.py`` or,
    for packages, ``<name>/__init__.py``.

    Example:
        resolver = FileResolver(Path("plugins"))
        descriptor = resolver("db")   # plugins/db.py
    """

    def __init__(self, directory: Path | str):
        """
        Initialize FileResolver.

        Args:
            directory: Base directory containing plugins
        """
        self.directory = Path(directory).resolve()

    def resolve_path(self, name: str) -> Path:
        """
        Resolve a plugin name to its entry point file.

        Args:
            name: Plugin name, relative to the plugin directory

        Returns:
            Absolute path to the entry point (which may not exist)
        """
        base = (self.directory / name).resolve()
        if base.is_dir():
            return base / "__init__.py"
        if base.suffix == ".py":
            return base
        return base.with_name(base.name + ".py")

    def __call__(self, name: str) -> ModuleType:
        """
        Resolve a plugin name to its module.

        Raises:
            PluginNotFoundError: If no plugin file exists for ``name``
            LoaderError: If the plugin file cannot be loaded
        """
        return load_plugin_module(self.resolve_path(name))

    def reload(self, name: str) -> ModuleType:
        """
        Reload a plugin module (for development).

        The reloaded module is a new object, so it registers as a new plugin.
        """
        entry_point = self.resolve_path(name)
        unload_plugin_module(entry_point)
        return load_plugin_module(entry_point)

    def __repr__(self) -> str:
        return f"FileResolver({self.directory})"


class ModuleResolver:
    """
    Resolve plugin names to importable modules.

    Example:
        resolver = ModuleResolver("myapp.plugins")
        descriptor = resolver("db")   # import myapp.plugins.db
    """

    def __init__(self, package: str | None = None):
        self.package = package

    def __call__(self, name: str) -> ModuleType:
        """
        Import the module for a plugin name.

        Raises:
            PluginNotFoundError: If the module does not exist
            LoaderError: If importing the module fails
        """
        module_name = f"{self.package}.{name}" if self.package else name

        try:
            return importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            missing = e.name or ""
            if module_name == missing or module_name.startswith(missing + "."):
                raise PluginNotFoundError(f"Plugin module not found: {module_name}") from e
            raise LoaderError(f"Failed to import plugin module {module_name}: {e}") from e
        except Exception as e:
            raise LoaderError(f"Failed to import plugin module {module_name}: {e}") from e

    def __repr__(self) -> str:
        return f"ModuleResolver({self.package!r})"


class MappingResolver:
    """Resolve plugin names from an in-memory mapping."""

    def __init__(self, descriptors: Mapping[str, Any]):
        self.descriptors = descriptors

    def __call__(self, name: str) -> Any:
        """
        Look up the descriptor for a plugin name.

        Raises:
            PluginNotFoundError: If ``name`` is not in the mapping
        """
        try:
            return self.descriptors[name]
        except KeyError as e:
            raise PluginNotFoundError(f"Plugin not found: {name}") from e

    def __repr__(self) -> str:
        return f"MappingResolver({list(self.descriptors)})"
