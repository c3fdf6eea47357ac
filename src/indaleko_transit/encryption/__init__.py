"""
Transit encryption clients for Indaleko Transit.

This module provides the facade over the remote encryption service and
an in-process stand-in used for development.
"""

from .transit_client import (
    TransitClient,
    VaultTransitClient,
    get_transit_client,
    set_transit_client,
)
from .memory_client import InMemoryTransitClient

__all__ = [
    "TransitClient",
    "VaultTransitClient",
    "InMemoryTransitClient",
    "get_transit_client",
    "set_transit_client",
]
