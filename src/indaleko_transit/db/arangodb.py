"""
ArangoDB record store for Indaleko Transit.

This module provides a record store backed by ArangoDB using the
python-arango driver. Each model table maps to one collection and each
record to one document.
"""

import logging

from arango import ArangoClient
from arango.exceptions import (
    AQLQueryExecuteError,
    ArangoError,
    CollectionCreateError,
    DocumentDeleteError,
    DocumentGetError,
    DocumentInsertError,
    DocumentReplaceError,
)

from ..config import TransitConfig
from ..errors import RecordNotFound, StoreError
from .store import RecordStore


logger = logging.getLogger(__name__)

# ArangoDB error number for "document not found"
_DOCUMENT_NOT_FOUND = 1202

_SYSTEM_FIELDS = ("_id", "_key", "_rev")


class ArangoRecordStore(RecordStore):
    """
    Record store backed by ArangoDB.

    Collections are created on first use.
    """

    def __init__(self, client: ArangoClient | None = None) -> None:
        """
        Initialize the ArangoDB record store.

        Args:
            client: Optional pre-configured ArangoClient

        Raises:
            StoreError: If the database cannot be reached
        """
        # Get database configuration
        db_config = TransitConfig.get_database_credentials()
        db_url = TransitConfig.get_database_url()

        try:
            self.client = client or ArangoClient(hosts=db_url)

            # Connect to the database
            self.db = self.client.db(
                name=db_config["database"],
                username=db_config["username"],
                password=db_config["password"],
                auth_method="basic",
                verify=True,
            )
        except ArangoError as e:
            raise StoreError(f"Failed to connect to ArangoDB at {db_url}: {e}") from e

        self._known_collections: set[str] = set()

    def _collection(self, name: str):
        """Get a collection, creating it if it doesn't exist."""
        if name not in self._known_collections:
            try:
                if not self.db.has_collection(name):
                    logger.info("Creating collection: %s", name)
                    self.db.create_collection(name)
            except CollectionCreateError as e:
                raise StoreError(f"Failed to create collection {name}: {e}") from e
            except ArangoError as e:
                raise StoreError(f"Failed to list collections: {e}") from e
            self._known_collections.add(name)

        return self.db.collection(name)

    @staticmethod
    def _strip(document: dict[str, object]) -> dict[str, object]:
        return {k: v for k, v in document.items() if k not in _SYSTEM_FIELDS}

    def insert(self, collection: str, document: dict[str, object]) -> str:
        try:
            result = self._collection(collection).insert(self._strip(document))
        except DocumentInsertError as e:
            raise StoreError(f"Failed to insert document into {collection}: {e}") from e
        return result["_key"]

    def replace(self, collection: str, key: str, document: dict[str, object]) -> None:
        try:
            self._collection(collection).replace({"_key": key, **self._strip(document)})
        except DocumentReplaceError as e:
            if e.error_code == _DOCUMENT_NOT_FOUND:
                raise RecordNotFound(f"Record {collection}/{key} not found") from e
            raise StoreError(f"Failed to replace document {collection}/{key}: {e}") from e

    def get(self, collection: str, key: str) -> dict[str, object]:
        try:
            document = self._collection(collection).get(key)
        except DocumentGetError as e:
            raise StoreError(f"Failed to get document {collection}/{key}: {e}") from e

        if document is None:
            raise RecordNotFound(f"Record {collection}/{key} not found")
        return self._strip(document)

    def delete(self, collection: str, key: str) -> None:
        try:
            self._collection(collection).delete(key)
        except DocumentDeleteError as e:
            if e.error_code == _DOCUMENT_NOT_FOUND:
                raise RecordNotFound(f"Record {collection}/{key} not found") from e
            raise StoreError(f"Failed to delete document {collection}/{key}: {e}") from e

    def find(self, collection: str, filter_dict: dict[str, object], limit: int = 50) -> list[dict[str, object]]:
        # Make sure the collection exists before querying it
        self._collection(collection)

        filter_conditions = []
        bind_vars: dict[str, object] = {"@collection": collection, "limit": limit}
        for i, (column, value) in enumerate(filter_dict.items()):
            filter_conditions.append(f"doc[@column{i}] == @value{i}")
            bind_vars[f"column{i}"] = column
            bind_vars[f"value{i}"] = value

        filter_clause = " AND ".join(filter_conditions) if filter_conditions else "true"
        query = f"""
        FOR doc IN @@collection
        FILTER {filter_clause}
        LIMIT @limit
        RETURN doc
        """

        try:
            cursor = self.db.aql.execute(query, bind_vars=bind_vars)
            return [{"_key": doc["_key"], **self._strip(doc)} for doc in cursor]
        except AQLQueryExecuteError as e:
            raise StoreError(f"Query on {collection} failed: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        self.client.close()
