"""
Tests for Plugin Resolvers.

This test suite covers:
1. FileResolver path resolution and loading
2. Module cache and reload
3. Missing and broken plugins
4. ModuleResolver and MappingResolver
"""

import hashlib
import json
import json.decoder
import sys
from pathlib import Path

import pytest

from carton.plugin.loader import (
    FileResolver,
    LoaderError,
    MappingResolver,
    ModuleResolver,
    PluginNotFoundError,
    ResolverError,
    clear_cache,
    is_module_cached,
)
from carton.plugin.plugin import Plugin

FIXTURE_PLUGINS = Path(__file__).resolve().parents[1] / "fixtures" / "plugins"


@pytest.fixture(autouse=True)
def clean_cache():
    """Start and finish every test with an empty module cache."""
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def resolver():
    return FileResolver(FIXTURE_PLUGINS)


class TestFileResolver:
    """Test FileResolver."""

    def test_resolve_path(self, resolver):
        """Names map to <name>.py, or <name>/__init__.py for packages."""
        assert resolver.resolve_path("a") == FIXTURE_PLUGINS / "a.py"
        assert resolver.resolve_path("a.py") == FIXTURE_PLUGINS / "a.py"
        assert resolver.resolve_path("packaged") == FIXTURE_PLUGINS / "packaged" / "__init__.py"
        assert resolver.resolve_path("vendor/db") == FIXTURE_PLUGINS / "vendor" / "db.py"

    def test_loads_module(self, resolver):
        """A plugin file loads as a module exposing start and end."""
        module = resolver("a")

        assert callable(module.start)
        assert callable(module.end)
        assert Plugin.is_valid(module)

    def test_loads_package(self, resolver):
        """A plugin directory loads through its __init__.py."""
        module = resolver("packaged")

        assert Plugin.is_valid(module)

    def test_referentially_stable(self, resolver):
        """Resolving a name twice yields the same object."""
        assert resolver("a") is resolver("a")
        assert resolver("a") is FileResolver(FIXTURE_PLUGINS)("a.py")
        assert is_module_cached(FIXTURE_PLUGINS / "a.py")

    def test_module_registered_in_sys_modules(self, resolver):
        """Loaded modules get a unique name in sys.modules."""
        module = resolver("a")

        assert module.__name__.startswith("carton_plugin_a_")
        assert sys.modules[module.__name__] is module

    def test_module_name_is_stable(self, resolver):
        """Module names derive from a path digest, identical across runs."""
        entry_point = FIXTURE_PLUGINS / "a.py"
        digest = hashlib.sha1(str(entry_point).encode()).hexdigest()[:12]

        assert resolver("a").__name__ == f"carton_plugin_a_{digest}"

    def test_missing(self, resolver):
        """Unknown names raise PluginNotFoundError."""
        with pytest.raises(PluginNotFoundError, match="not found"):
            resolver("does_not_exist")

        # ResolverError is a LookupError
        with pytest.raises(LookupError):
            resolver("does_not_exist")

    def test_broken(self, resolver):
        """Import errors are wrapped in LoaderError and nothing is cached."""
        with pytest.raises(LoaderError, match="broken at import") as exc_info:
            resolver("broken")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert not is_module_cached(FIXTURE_PLUGINS / "broken.py")
        assert not any(name.startswith("carton_plugin_broken_") for name in sys.modules)

    def test_invalid_descriptor_still_resolves(self, resolver):
        """Resolvers do not validate; registration does."""
        module = resolver("invalid")

        assert module.VALUE == 1
        assert not Plugin.is_valid(module)

    def test_reload(self, resolver):
        """reload() loads a fresh module object."""
        first = resolver("a")
        second = resolver.reload("a")

        assert second is not first
        assert resolver("a") is second

    def test_clear_cache(self, resolver):
        """clear_cache() empties the cache and sys.modules entries."""
        module = resolver("a")
        clear_cache()

        assert not is_module_cached(FIXTURE_PLUGINS / "a.py")
        assert module.__name__ not in sys.modules


class TestModuleResolver:
    """Test ModuleResolver."""

    def test_top_level(self):
        """Without a package, names are absolute module names."""
        assert ModuleResolver()("json") is json

    def test_package(self):
        """With a package, names are relative to it."""
        assert ModuleResolver("json")("decoder") is json.decoder

    def test_missing_module(self):
        """A missing module is reported as not found."""
        with pytest.raises(PluginNotFoundError):
            ModuleResolver("json")("does_not_exist")

        with pytest.raises(PluginNotFoundError):
            ModuleResolver("carton_missing_package")("db")

    def test_missing_dependency(self, tmp_path, monkeypatch):
        """A plugin whose own imports fail is a load error, not a missing plugin."""
        package = tmp_path / "carton_resolver_fixture"
        package.mkdir()
        (package / "__init__.py").write_text("")
        (package / "needs_dep.py").write_text("import carton_missing_dependency\n")
        monkeypatch.syspath_prepend(str(tmp_path))

        with pytest.raises(LoaderError, match="carton_missing_dependency"):
            ModuleResolver("carton_resolver_fixture")("needs_dep")


class TestMappingResolver:
    """Test MappingResolver."""

    def test_lookup(self):
        """Names resolve to the mapped descriptor."""
        descriptor = object()

        assert MappingResolver({"db": descriptor})("db") is descriptor

    def test_missing(self):
        """Unknown names raise PluginNotFoundError."""
        with pytest.raises(ResolverError, match="db"):
            MappingResolver({})("db")
