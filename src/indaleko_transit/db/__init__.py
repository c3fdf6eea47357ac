"""
Record stores for Indaleko Transit.

This module provides the persistence backends models are saved to, with
current support for an in-memory store and ArangoDB.
"""

from .store import MemoryRecordStore, RecordStore, get_record_store, set_record_store

__all__ = ["MemoryRecordStore", "RecordStore", "get_record_store", "set_record_store"]
