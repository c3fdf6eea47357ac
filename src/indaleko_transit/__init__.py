"""
Indaleko Transit - encryption at rest for model attributes.

This package provides models whose sensitive attributes are encrypted
through a Vault-style transit engine before they reach the database,
and decrypted transparently when records are loaded.
"""

from .config import TransitConfig
from .encryption import InMemoryTransitClient, TransitClient, VaultTransitClient
from .errors import (
    ConfigurationError,
    CryptoServiceError,
    RecordNotFound,
    SerializationError,
    StoreError,
    TransitError,
)
from .models import AttributeProxy, AttributeState, EncryptedField, EncryptedModel
from .registry import AttributePolicy, ValueType

__version__ = "0.1.0"

__all__ = [
    "TransitConfig",
    "EncryptedModel",
    "EncryptedField",
    "AttributeProxy",
    "AttributeState",
    "AttributePolicy",
    "ValueType",
    "TransitClient",
    "VaultTransitClient",
    "InMemoryTransitClient",
    "TransitError",
    "ConfigurationError",
    "CryptoServiceError",
    "SerializationError",
    "StoreError",
    "RecordNotFound",
]
