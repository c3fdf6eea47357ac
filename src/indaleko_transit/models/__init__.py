"""
Model classes for Indaleko Transit.

This module provides the base model and descriptors for attributes that
are encrypted at rest.
"""

from .attribute_proxy import AttributeProxy
from .encrypted_model import EncryptedField, EncryptedModel
from .lifecycle import AttributeLifecycleController, AttributeState

__all__ = [
    "AttributeLifecycleController",
    "AttributeProxy",
    "AttributeState",
    "EncryptedField",
    "EncryptedModel",
]
