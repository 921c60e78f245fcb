"""
TOML File I/O Handler.

This module provides TOML parsing and writing for settings files.

Key features:
- Parse TOML files using tomllib (Python 3.11+)
- Write TOML files using tomlkit (preserves comments and formatting)
- Generate a commented settings file from a schema
"""

import tomllib
from pathlib import Path
from typing import Any

import tomlkit

from carton.config.schema import ConfigField


class TOMLError(Exception):
    """Base exception for TOML-related errors."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Read and parse a TOML file.

    Args:
        file_path: Path to the TOML file

    Returns:
        Parsed TOML data as dictionary

    Raises:
        TOMLError: If file cannot be read or parsed
    """
    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise TOMLError(f"TOML file not found: {file_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise TOMLError(f"Failed to parse TOML file {file_path}: {e}") from e
    except OSError as e:
        raise TOMLError(f"Failed to read TOML file {file_path}: {e}") from e


def write_toml(file_path: Path, content: str | dict[str, Any]) -> None:
    """
    Write a TOML document to a file.

    Args:
        file_path: Path to the TOML file
        content: Rendered TOML text, or data to render with tomlkit

    Raises:
        TOMLError: If file cannot be written
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "w", encoding="utf-8") as f:
            if isinstance(content, str):
                f.write(content)
            else:
                tomlkit.dump(content, f)
    except OSError as e:
        raise TOMLError(f"Failed to write TOML file {file_path}: {e}") from e


def generate_toml_from_schema(
    section: str,
    schema: dict[str, ConfigField],
    config_data: dict[str, Any],
    plugin_options: dict[str, dict[str, Any]] | None = None,
) -> str:
    """
    Generate TOML content from schema with descriptive comments.

    Args:
        section: Name of the settings table
        schema: Schema dictionary (field_name -> ConfigField)
        config_data: Configuration data (field_name -> value)
        plugin_options: Per-plugin option tables written under [plugins]

    Returns:
        TOML string with comments
    """
    doc = tomlkit.document()

    doc.add(tomlkit.comment("Carton container settings"))
    doc.add(tomlkit.nl())

    table = tomlkit.table()

    for field_name, field in schema.items():
        if field.description:
            table.add(tomlkit.comment(field.description))

        constraints = []
        if field.min is not None:
            constraints.append(f"min: {field.min}")
        if field.max is not None:
            constraints.append(f"max: {field.max}")
        if field.choices is not None:
            constraints.append(f"choices: {', '.join(map(str, field.choices))}")
        if constraints:
            table.add(tomlkit.comment(f"Constraints: {'; '.join(constraints)}"))

        table.add(field_name, config_data.get(field_name, field.default))
        table.add(tomlkit.nl())

    doc.add(section, table)

    plugins = tomlkit.table(is_super_table=True)
    for name, options in (plugin_options or {}).items():
        plugins.add(name, options)
    if plugin_options:
        doc.add("plugins", plugins)
    else:
        doc.add(tomlkit.comment("Per-plugin options:"))
        doc.add(tomlkit.comment("[plugins.<name>]"))
        doc.add(tomlkit.comment("key = \"value\""))

    return tomlkit.dumps(doc)
