"""
Serializer adapters for encrypted attributes.

A serializer turns an attribute value into the string that is sent to
the transit engine as plaintext, and turns decrypted plaintext back into
a value. Built-in serializers map None to None without running any
conversion; custom decode functions receive None and must handle it.
"""

import ipaddress
import json
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol, runtime_checkable

from ..errors import ConfigurationError, SerializationError


@runtime_checkable
class Serializer(Protocol):
    """Capability set every serializer provides."""

    def encode(self, value: Any) -> str | None: ...

    def decode(self, raw: str | None) -> Any: ...


class IdentitySerializer:
    """Pass-through serializer used when an attribute has none configured."""

    name = "identity"

    def encode(self, value: Any) -> Any:
        return value

    def decode(self, raw: str | None) -> Any:
        return raw


class JSONSerializer:
    """Structured values stored as JSON text."""

    name = "json"

    def encode(self, value: Any) -> str | None:
        if value is None:
            return None
        return json.dumps(value, separators=(",", ":"))

    def decode(self, raw: str | None) -> Any:
        if raw is None:
            return None
        return json.loads(raw)


class BinarySerializer:
    """
    Binary values framed as a string of bits.

    Each byte becomes eight characters of '0'/'1', most significant bit
    first, so arbitrary bytes survive a text-only transit round trip.
    """

    name = "binary"

    def encode(self, value: bytes | bytearray | None) -> str | None:
        if value is None:
            return None
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"binary serializer expects bytes, got {type(value).__name__}")
        return "".join(format(byte, "08b") for byte in value)

    def decode(self, raw: str | None) -> bytes | None:
        if raw is None:
            return None
        if len(raw) % 8:
            raise ValueError("binary payload length is not a multiple of 8")
        return bytes(int(raw[i:i + 8], 2) for i in range(0, len(raw), 8))


class IPAddrSerializer:
    """
    IP addresses and networks in their textual form.

    Networks keep their prefix length ("10.0.0.0/8"); single hosts are
    stored without one.
    """

    name = "ipaddr"

    def encode(self, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
            return value.with_prefixlen
        return str(ipaddress.ip_address(value))

    def decode(self, raw: str | None) -> Any:
        if raw is None:
            return None
        if "/" in raw:
            return ipaddress.ip_network(raw)
        return ipaddress.ip_address(raw)


class DateSerializer:
    """Dates in ISO 8601 form."""

    name = "date"

    def encode(self, value: date | None) -> str | None:
        if value is None:
            return None
        if isinstance(value, datetime):
            value = value.date()
        return value.isoformat()

    def decode(self, raw: str | None) -> date | None:
        if raw is None:
            return None
        return date.fromisoformat(raw)


class DateTimeSerializer:
    """Timestamps in ISO 8601 form, offset included when present."""

    name = "datetime"

    def encode(self, value: datetime | None) -> str | None:
        if value is None:
            return None
        return value.isoformat()

    def decode(self, raw: str | None) -> datetime | None:
        if raw is None:
            return None
        return datetime.fromisoformat(raw)


class IntegerSerializer:
    name = "integer"

    def encode(self, value: int | None) -> str | None:
        if value is None:
            return None
        return str(int(value))

    def decode(self, raw: str | None) -> int | None:
        if raw is None:
            return None
        return int(raw)


class FloatSerializer:
    name = "float"

    def encode(self, value: float | None) -> str | None:
        if value is None:
            return None
        return repr(float(value))

    def decode(self, raw: str | None) -> float | None:
        if raw is None:
            return None
        return float(raw)


class DecimalSerializer:
    name = "decimal"

    def encode(self, value: Decimal | None) -> str | None:
        if value is None:
            return None
        return str(Decimal(value))

    def decode(self, raw: str | None) -> Decimal | None:
        if raw is None:
            return None
        try:
            return Decimal(raw)
        except InvalidOperation as e:
            raise ValueError(f"invalid decimal literal: {raw!r}") from e


class CustomSerializer:
    """
    Serializer built from a caller-supplied encode/decode pair.

    The functions are called as-is, including with None.
    """

    name = "custom"

    def __init__(self, encode: Callable[[Any], Any], decode: Callable[[Any], Any]) -> None:
        self._encode = encode
        self._decode = decode

    def encode(self, value: Any) -> Any:
        return self._encode(value)

    def decode(self, raw: Any) -> Any:
        return self._decode(raw)


_BUILTIN_SERIALIZERS: dict[str, Serializer] = {
    "identity": IdentitySerializer(),
    "json": JSONSerializer(),
    "binary": BinarySerializer(),
    "ipaddr": IPAddrSerializer(),
    "date": DateSerializer(),
    "datetime": DateTimeSerializer(),
    "time": DateTimeSerializer(),
    "integer": IntegerSerializer(),
    "float": FloatSerializer(),
    "decimal": DecimalSerializer(),
}


def serializer_for(name: str) -> Serializer:
    """
    Look up a built-in serializer by name.

    Args:
        name: Serializer name, e.g. "json" or "ipaddr"

    Returns:
        The shared serializer instance

    Raises:
        ConfigurationError: If no serializer has that name
    """
    try:
        return _BUILTIN_SERIALIZERS[str(name).lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown serializer {name!r}; expected one of {sorted(_BUILTIN_SERIALIZERS)}"
        ) from None


def resolve_serializer(option: Any) -> Serializer | None:
    """
    Turn a ``serializer=`` option into a serializer object.

    Strings name a built-in, classes are instantiated, and anything else
    exposing callable ``encode`` and ``decode`` (an instance or a module)
    is used directly.
    """
    if option is None:
        return None
    if isinstance(option, str):
        return serializer_for(option)
    if isinstance(option, type):
        option = option()
    if callable(getattr(option, "encode", None)) and callable(getattr(option, "decode", None)):
        return option
    raise ConfigurationError(
        f"Serializer {option!r} must be a built-in name or provide encode() and decode()"
    )


def encode_value(serializer: Serializer | None, value: Any) -> Any:
    """Encode a value, reporting adapter failures as SerializationError."""
    if serializer is None:
        return value
    try:
        return serializer.encode(value)
    except SerializationError:
        raise
    except (TypeError, ValueError, LookupError, AttributeError, ArithmeticError) as e:
        raise SerializationError(f"Failed to encode value with {_describe(serializer)}: {e}") from e


def decode_value(serializer: Serializer | None, raw: Any) -> Any:
    """Decode plaintext, reporting adapter failures as SerializationError."""
    if serializer is None:
        return raw
    try:
        return serializer.decode(raw)
    except SerializationError:
        raise
    except (TypeError, ValueError, LookupError, AttributeError, ArithmeticError) as e:
        raise SerializationError(f"Failed to decode value with {_describe(serializer)}: {e}") from e


def _describe(serializer: Serializer) -> str:
    return getattr(serializer, "name", None) or type(serializer).__name__
