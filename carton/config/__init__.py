"""
Carton Configuration System - TOML-based container settings.

This module provides:
- Loading and validating a settings file
- Per-plugin option tables
- Generating a commented default settings file

Example settings file:
    [carton]
    plugin_directory = "plugins"
    plugins = ["db", "api"]
    timeout = 30.0
    log_level = "INFO"

    [plugins.api]
    port = 8080

Example usage:
    settings = carton.config.load_settings(Path("carton.toml"))
    container = Container.from_settings(settings)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from carton.config.schema import (
    SETTINGS_SCHEMA,
    ValidationError,
    generate_default_config,
    validate_config,
)
from carton.config.toml_handler import TOMLError, generate_toml_from_schema, read_toml, write_toml

SECTION = "carton"
DEFAULT_CONFIG_FILE = Path("carton.toml")


class ConfigError(Exception):
    """Base exception for config API errors."""

    pass


@dataclass
class Settings:
    """
    Container settings.

    Attributes:
        plugin_directory: Absolute directory containing plugins
        plugins: Plugin names to load, in registration order
        timeout: Startup timeout in seconds
        log_level: Logging level name
        plugin_options: Option tables keyed by plugin name
    """

    plugin_directory: Path
    plugins: list[str] = field(default_factory=list)
    timeout: float = 30.0
    log_level: str = "INFO"
    plugin_options: dict[str, dict[str, Any]] = field(default_factory=dict)


def default_settings(base_dir: Path | None = None) -> Settings:
    """
    Build settings from schema defaults.

    Args:
        base_dir: Directory relative paths are resolved against (default: cwd)

    Returns:
        Settings with default values
    """
    return _build(generate_default_config(SETTINGS_SCHEMA), {}, base_dir or Path.cwd())


def load_settings(config_file: Path = DEFAULT_CONFIG_FILE) -> Settings:
    """
    Load settings from a TOML file.

    Keys missing from the [carton] table take their defaults. The plugin
    directory is resolved relative to the file's directory.

    Args:
        config_file: Path to the settings file

    Returns:
        Loaded Settings

    Raises:
        ConfigError: If the file cannot be read or fails validation
    """
    try:
        data = read_toml(config_file)
    except TOMLError as e:
        raise ConfigError(str(e)) from e

    unknown = set(data) - {SECTION, "plugins"}
    if unknown:
        raise ConfigError(f"Unknown tables in {config_file}: {', '.join(sorted(unknown))}")

    section = data.get(SECTION, {})
    options = data.get("plugins", {})

    if not isinstance(section, dict):
        raise ConfigError(f"[{SECTION}] in {config_file} must be a table")
    if not isinstance(options, dict) or not all(isinstance(t, dict) for t in options.values()):
        raise ConfigError(f"[plugins] in {config_file} must only contain tables")

    try:
        validate_config(section, SETTINGS_SCHEMA)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {config_file}: {e}") from e

    values = generate_default_config(SETTINGS_SCHEMA)
    values.update(section)

    return _build(values, options, config_file.resolve().parent)


def write_default_config(config_file: Path = DEFAULT_CONFIG_FILE, overwrite: bool = False) -> None:
    """
    Write a commented settings file with default values.

    Args:
        config_file: Destination path
        overwrite: Replace an existing file

    Raises:
        ConfigError: If the file exists and overwrite is False, or writing fails
    """
    if config_file.exists() and not overwrite:
        raise ConfigError(f"Config file already exists: {config_file}")

    content = generate_toml_from_schema(
        SECTION, SETTINGS_SCHEMA, generate_default_config(SETTINGS_SCHEMA)
    )

    try:
        write_toml(config_file, content)
    except TOMLError as e:
        raise ConfigError(str(e)) from e


def _build(values: dict[str, Any], options: dict[str, Any], base_dir: Path) -> Settings:
    return Settings(
        plugin_directory=(base_dir / values["plugin_directory"]).resolve(),
        plugins=list(values["plugins"]),
        timeout=float(values["timeout"]),
        log_level=values["log_level"],
        plugin_options={name: dict(table) for name, table in options.items()},
    )


__all__ = [
    "Settings",
    "ConfigError",
    "load_settings",
    "default_settings",
    "write_default_config",
    "DEFAULT_CONFIG_FILE",
]
