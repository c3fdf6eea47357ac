"""
Serializer adapters for Indaleko Transit.

This module provides the built-in encode/decode strategies used to turn
attribute values into transit plaintext and back.
"""

from .builtin import (
    BinarySerializer,
    CustomSerializer,
    DateSerializer,
    DateTimeSerializer,
    DecimalSerializer,
    FloatSerializer,
    IdentitySerializer,
    IntegerSerializer,
    IPAddrSerializer,
    JSONSerializer,
    Serializer,
    decode_value,
    encode_value,
    resolve_serializer,
    serializer_for,
)

__all__ = [
    "BinarySerializer",
    "CustomSerializer",
    "DateSerializer",
    "DateTimeSerializer",
    "DecimalSerializer",
    "FloatSerializer",
    "IdentitySerializer",
    "IntegerSerializer",
    "IPAddrSerializer",
    "JSONSerializer",
    "Serializer",
    "decode_value",
    "encode_value",
    "resolve_serializer",
    "serializer_for",
]
