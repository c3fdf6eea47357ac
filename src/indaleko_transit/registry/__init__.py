"""
Encryption policy registry for Indaleko Transit.

This module provides the mapping from model attributes to the policy
used to encrypt them.
"""

from .policy import (
    AttributePolicy,
    PolicyRegistry,
    default_key_id,
    policy_registry,
    table_name_for,
    validate_options,
)
from .value_types import ValueType

__all__ = [
    "AttributePolicy",
    "PolicyRegistry",
    "ValueType",
    "default_key_id",
    "policy_registry",
    "table_name_for",
    "validate_options",
]
