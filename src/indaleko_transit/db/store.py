"""
Record stores for Indaleko Transit.

A record store persists the physical columns of a model (ciphertext
included, plaintext never) as one document per record. Each call is
atomic for the record it touches: either the whole document is written
or the call raises and nothing is.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from copy import deepcopy

from ..config import TransitConfig
from ..errors import ConfigurationError, RecordNotFound


logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """Interface every record store implements."""

    @abstractmethod
    def insert(self, collection: str, document: dict[str, object]) -> str:
        """
        Insert a new record.

        Args:
            collection: Collection (table) name
            document: Column values of the record

        Returns:
            Key of the new record
        """

    @abstractmethod
    def replace(self, collection: str, key: str, document: dict[str, object]) -> None:
        """
        Replace the columns of an existing record.

        Raises:
            RecordNotFound: If the record does not exist
        """

    @abstractmethod
    def get(self, collection: str, key: str) -> dict[str, object]:
        """
        Get the columns of a record.

        Raises:
            RecordNotFound: If the record does not exist
        """

    @abstractmethod
    def delete(self, collection: str, key: str) -> None:
        """
        Delete a record.

        Raises:
            RecordNotFound: If the record does not exist
        """

    @abstractmethod
    def find(self, collection: str, filter_dict: dict[str, object], limit: int = 50) -> list[dict[str, object]]:
        """
        Find records whose columns equal the given values.

        Used for lookups on convergent ciphertext columns.

        Returns:
            Up to limit documents, each with its "_key"
        """

    def close(self) -> None:
        """Release any resources held by the store."""


class MemoryRecordStore(RecordStore):
    """
    Record store backed by a dictionary.

    Documents are copied on the way in and out, so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, object]]] = {}
        self._lock = threading.Lock()

    def insert(self, collection: str, document: dict[str, object]) -> str:
        key = str(uuid.uuid4())
        with self._lock:
            self._collections.setdefault(collection, {})[key] = deepcopy(document)
        logger.debug("Inserted %s/%s", collection, key)
        return key

    def replace(self, collection: str, key: str, document: dict[str, object]) -> None:
        with self._lock:
            records = self._collections.get(collection, {})
            if key not in records:
                raise RecordNotFound(f"Record {collection}/{key} not found")
            records[key] = deepcopy(document)
        logger.debug("Replaced %s/%s", collection, key)

    def get(self, collection: str, key: str) -> dict[str, object]:
        with self._lock:
            try:
                return deepcopy(self._collections[collection][key])
            except KeyError:
                raise RecordNotFound(f"Record {collection}/{key} not found") from None

    def delete(self, collection: str, key: str) -> None:
        with self._lock:
            try:
                del self._collections[collection][key]
            except KeyError:
                raise RecordNotFound(f"Record {collection}/{key} not found") from None

    def find(self, collection: str, filter_dict: dict[str, object], limit: int = 50) -> list[dict[str, object]]:
        results = []
        with self._lock:
            for key, document in self._collections.get(collection, {}).items():
                if all(document.get(column) == value for column, value in filter_dict.items()):
                    results.append({"_key": key, **deepcopy(document)})
                    if len(results) >= limit:
                        break
        return results

    def keys(self, collection: str) -> list[str]:
        """List the record keys of a collection."""
        with self._lock:
            return list(self._collections.get(collection, {}))


_default_store: RecordStore | None = None
_default_store_lock = threading.Lock()


def get_record_store() -> RecordStore:
    """
    Get the process-wide record store, creating it on first use.

    The backend comes from ``database.backend`` ("memory" or "arangodb").

    Raises:
        ConfigurationError: If the backend is unknown
    """
    global _default_store

    with _default_store_lock:
        if _default_store is None:
            backend = TransitConfig.get("database.backend", "memory")
            if backend == "memory":
                _default_store = MemoryRecordStore()
            elif backend == "arangodb":
                from .arangodb import ArangoRecordStore
                _default_store = ArangoRecordStore()
            else:
                raise ConfigurationError(f"Unknown database backend: {backend}")
            logger.info("Using %s record store", backend)
        return _default_store


def set_record_store(store: RecordStore | None) -> None:
    """Replace the process-wide record store; None resets it."""
    global _default_store

    with _default_store_lock:
        _default_store = store
