"""
Configuration Schema System.

This module provides schema declaration and validation for the container
settings file.

Key features:
- Type-safe field definitions with constraints
- Validation of values against schema
- The settings schema of the [carton] table
"""

from dataclasses import dataclass
from typing import Any


class SchemaError(Exception):
    """Base exception for schema-related errors."""

    pass


class ValidationError(SchemaError):
    """Raised when value validation fails."""

    pass


def _type_name(type_: type | tuple[type, ...]) -> str:
    if isinstance(type_, tuple):
        return " or ".join(t.__name__ for t in type_)
    return type_.__name__


def _is_instance(value: Any, type_: type | tuple[type, ...]) -> bool:
    # bool is an int subclass, but never a valid number setting
    if isinstance(value, bool):
        types = type_ if isinstance(type_, tuple) else (type_,)
        return bool in types
    return isinstance(value, type_)


@dataclass
class ConfigField:
    """
    Represents a configuration field with type and constraints.

    Attributes:
        type_: The expected type (or tuple of types) of the field value
        default: Default value for the field
        description: Human-readable description
        min: Minimum value (for numbers) or minimum length (for strings/lists)
        max: Maximum value (for numbers) or maximum length (for strings/lists)
        choices: List of allowed values (optional)
        item_type: Expected type of list items (for list fields)
    """

    type_: type | tuple[type, ...]
    default: Any
    description: str = ""
    min: Any = None
    max: Any = None
    choices: list[Any] | None = None
    item_type: type | None = None

    def __post_init__(self):
        """Validate field definition."""
        if not _is_instance(self.default, self.type_):
            raise SchemaError(
                f"Default value {self.default!r} does not match type {_type_name(self.type_)}"
            )

        if self.item_type is not None and self.type_ is not list:
            raise SchemaError("item_type is only supported for list fields")

        if self.choices is not None:
            if not isinstance(self.choices, list):
                raise SchemaError("choices must be a list")
            if self.default not in self.choices:
                raise SchemaError(
                    f"Default value {self.default!r} not in choices {self.choices}"
                )

    def validate(self, value: Any) -> None:
        """
        Validate a value against this field's constraints.

        Args:
            value: The value to validate

        Raises:
            ValidationError: If validation fails
        """
        if not _is_instance(value, self.type_):
            raise ValidationError(
                f"Expected type {_type_name(self.type_)}, got {type(value).__name__}"
            )

        if self.choices is not None and value not in self.choices:
            raise ValidationError(
                f"Value {value!r} not in allowed choices {self.choices}"
            )

        # Numbers compare by value, strings and lists by length
        measure = len(value) if isinstance(value, (str, list)) else value
        if self.min is not None and measure < self.min:
            raise ValidationError(f"Value {value!r} is less than minimum {self.min}")
        if self.max is not None and measure > self.max:
            raise ValidationError(f"Value {value!r} is greater than maximum {self.max}")

        if self.item_type is not None:
            for item in value:
                if not _is_instance(item, self.item_type):
                    raise ValidationError(
                        f"Expected items of type {self.item_type.__name__}, "
                        f"got {type(item).__name__}"
                    )


LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Schema of the [carton] table
SETTINGS_SCHEMA: dict[str, ConfigField] = {
    "plugin_directory": ConfigField(
        str, "plugins", "Directory containing plugins, relative to this file"
    ),
    "plugins": ConfigField(
        list, [], "Plugins to load, by name, in registration order", item_type=str
    ),
    "timeout": ConfigField(
        (int, float),
        30.0,
        "Seconds plugins are given to start (negative or inf disables the timeout)",
    ),
    "log_level": ConfigField(str, "INFO", "Logging level", choices=LOG_LEVELS),
}


def validate_config(config: dict[str, Any], schema: dict[str, ConfigField]) -> None:
    """
    Validate a configuration dictionary against a schema.

    Missing fields are allowed (they take their defaults); unknown fields
    are not.

    Args:
        config: The configuration dictionary to validate
        schema: The schema dictionary (field_name -> ConfigField)

    Raises:
        ValidationError: If validation fails
    """
    for key in config:
        if key not in schema:
            raise ValidationError(f"Unknown configuration field: {key}")

    for field_name, field in schema.items():
        if field_name not in config:
            continue

        try:
            field.validate(config[field_name])
        except ValidationError as e:
            raise ValidationError(f"Field '{field_name}': {e}") from e


def generate_default_config(schema: dict[str, ConfigField]) -> dict[str, Any]:
    """
    Generate a default configuration from a schema.

    Args:
        schema: The schema dictionary (field_name -> ConfigField)

    Returns:
        A dictionary with default values for all fields
    """
    return {
        field_name: list(field.default) if isinstance(field.default, list) else field.default
        for field_name, field in schema.items()
    }
