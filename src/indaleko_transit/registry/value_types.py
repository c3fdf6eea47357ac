"""
Value types for encrypted attributes.

Each member of ValueType carries the cast applied to values assigned to
an attribute, and names the serializer used when the attribute does not
configure one.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import TypeAdapter

from ..errors import ConfigurationError


class ValueType(str, Enum):
    """Closed set of supported attribute value types."""

    VALUE = "value"
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"

    @classmethod
    def from_option(cls, option: "ValueType | str | None") -> "ValueType":
        """
        Resolve a ``type=`` option to a member.

        Args:
            option: A member, its name or value (case-insensitive), or None

        Returns:
            The matching member; VALUE when option is None

        Raises:
            ConfigurationError: If the option names no supported type
        """
        if option is None:
            return cls.VALUE
        if isinstance(option, cls):
            return option

        name = str(option).lower()
        name = _ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise ConfigurationError(
                f"Unknown attribute type {option!r}; expected one of {[m.value for m in cls]}"
            ) from None

    def cast(self, value: Any) -> Any:
        """
        Cast an assigned value to this type.

        None is never cast. Invalid input raises pydantic's ValidationError.
        """
        if value is None or self is ValueType.VALUE:
            return value
        if self is ValueType.STRING:
            return value if isinstance(value, str) else str(value)
        return _ADAPTERS[self].validate_python(value)

    @property
    def default_serializer(self) -> str | None:
        """Name of the serializer used when the attribute configures none."""
        return _DEFAULT_SERIALIZERS.get(self)


_ALIASES = {
    "str": "string",
    "text": "string",
    "int": "integer",
    "bool": "boolean",
    "time": "datetime",
}

_ADAPTERS: dict[ValueType, TypeAdapter] = {
    ValueType.INTEGER: TypeAdapter(int),
    ValueType.FLOAT: TypeAdapter(float),
    ValueType.DECIMAL: TypeAdapter(Decimal),
    ValueType.BOOLEAN: TypeAdapter(bool),
    ValueType.DATE: TypeAdapter(date),
    ValueType.DATETIME: TypeAdapter(datetime),
}

_DEFAULT_SERIALIZERS: dict[ValueType, str] = {
    ValueType.INTEGER: "integer",
    ValueType.FLOAT: "float",
    ValueType.DECIMAL: "decimal",
    ValueType.BOOLEAN: "json",
    ValueType.DATE: "date",
    ValueType.DATETIME: "datetime",
}
