"""
Tests for the record stores.
"""

from unittest.mock import MagicMock, patch

import pytest
from arango.exceptions import DocumentGetError, DocumentReplaceError

from indaleko_transit.config import TransitConfig
from indaleko_transit.db import MemoryRecordStore, RecordStore, get_record_store, set_record_store
from indaleko_transit.db.arangodb import ArangoRecordStore
from indaleko_transit.errors import ConfigurationError, RecordNotFound, StoreError


class TestRecordStore:
    """Tests for the RecordStore interface."""

    def test_find_is_required(self) -> None:
        """Test that a store without queries cannot be instantiated."""

        class KeyValueStore(RecordStore):
            def insert(self, collection, document):
                return "1"

            def replace(self, collection, key, document):
                pass

            def get(self, collection, key):
                return {}

            def delete(self, collection, key):
                pass

        with pytest.raises(TypeError):
            KeyValueStore()


class TestMemoryRecordStore:
    """Tests for the MemoryRecordStore class."""

    def setup_method(self) -> None:
        """Set up the test environment."""
        self.store = MemoryRecordStore()

    def test_insert_and_get(self) -> None:
        key = self.store.insert("person", {"name": "Jane", "ssn_encrypted": "vault:v1:abc"})

        assert self.store.get("person", key) == {"name": "Jane", "ssn_encrypted": "vault:v1:abc"}
        assert self.store.keys("person") == [key]

    def test_documents_are_copied(self) -> None:
        """Test that callers never share mutable state with the store."""
        document = {"tags": ["a"]}
        key = self.store.insert("person", document)

        document["tags"].append("b")
        fetched = self.store.get("person", key)
        fetched["tags"].append("c")

        assert self.store.get("person", key) == {"tags": ["a"]}

    def test_replace(self) -> None:
        key = self.store.insert("person", {"name": "Jane"})
        self.store.replace("person", key, {"name": "Janet"})

        assert self.store.get("person", key) == {"name": "Janet"}

    def test_missing_records(self) -> None:
        with pytest.raises(RecordNotFound):
            self.store.get("person", "missing")
        with pytest.raises(RecordNotFound):
            self.store.replace("person", "missing", {})
        with pytest.raises(RecordNotFound):
            self.store.delete("person", "missing")

    def test_delete(self) -> None:
        key = self.store.insert("person", {"name": "Jane"})
        self.store.delete("person", key)

        with pytest.raises(RecordNotFound):
            self.store.get("person", key)

    def test_find(self) -> None:
        """Test equality lookups on columns."""
        first = self.store.insert("person", {"ssn_encrypted": "ct-1", "name": "Jane"})
        self.store.insert("person", {"ssn_encrypted": "ct-2", "name": "John"})
        self.store.insert("person", {"ssn_encrypted": "ct-1", "name": "Jane"})

        results = self.store.find("person", {"ssn_encrypted": "ct-1"})
        assert len(results) == 2
        assert results[0]["_key"] == first

        assert len(self.store.find("person", {"ssn_encrypted": "ct-1"}, limit=1)) == 1
        assert self.store.find("other", {"ssn_encrypted": "ct-1"}) == []


class TestDefaultStore:
    """Tests for the process-wide record store."""

    def teardown_method(self) -> None:
        set_record_store(None)
        TransitConfig.initialize()

    def test_memory_backend(self) -> None:
        set_record_store(None)
        TransitConfig.initialize()

        store = get_record_store()
        assert isinstance(store, MemoryRecordStore)
        assert get_record_store() is store

    def test_unknown_backend(self) -> None:
        set_record_store(None)

        with patch.object(TransitConfig, "get", return_value="sqlite"):
            with pytest.raises(ConfigurationError):
                get_record_store()


class TestArangoRecordStore:
    """Tests for the ArangoRecordStore class."""

    def setup_method(self) -> None:
        """Set up the test environment."""
        self.arango_client = MagicMock()
        self.db = self.arango_client.db.return_value
        self.db.has_collection.return_value = True
        self.collection = self.db.collection.return_value

        self.store = ArangoRecordStore(client=self.arango_client)

    def test_connects_with_configured_credentials(self) -> None:
        kwargs = self.arango_client.db.call_args.kwargs
        credentials = TransitConfig.get_database_credentials()

        assert kwargs["name"] == credentials["database"]
        assert kwargs["username"] == credentials["username"]

    def test_insert_strips_system_fields(self) -> None:
        self.collection.insert.return_value = {"_key": "123", "_id": "person/123", "_rev": "1"}

        key = self.store.insert("person", {"_key": "old", "_rev": "9", "name": "Jane"})

        assert key == "123"
        self.collection.insert.assert_called_once_with({"name": "Jane"})

    def test_creates_missing_collection(self) -> None:
        self.db.has_collection.return_value = False
        self.collection.insert.return_value = {"_key": "1"}

        self.store.insert("person", {"name": "Jane"})
        self.store.insert("person", {"name": "John"})

        self.db.create_collection.assert_called_once_with("person")

    def test_get(self) -> None:
        self.collection.get.return_value = {"_key": "1", "_id": "person/1", "_rev": "x", "name": "Jane"}

        assert self.store.get("person", "1") == {"name": "Jane"}

    def test_get_missing(self) -> None:
        self.collection.get.return_value = None

        with pytest.raises(RecordNotFound):
            self.store.get("person", "1")

    def test_get_failure(self) -> None:
        self.collection.get.side_effect = DocumentGetError(MagicMock(), MagicMock())

        with pytest.raises(StoreError):
            self.store.get("person", "1")

    def test_replace_missing(self) -> None:
        error = DocumentReplaceError(MagicMock(), MagicMock())
        error.error_code = 1202
        self.collection.replace.side_effect = error

        with pytest.raises(RecordNotFound):
            self.store.replace("person", "1", {"name": "Jane"})

    def test_replace(self) -> None:
        self.store.replace("person", "1", {"name": "Jane"})

        self.collection.replace.assert_called_once_with({"_key": "1", "name": "Jane"})

    def test_find_uses_bind_vars(self) -> None:
        """Test that column names and values are bound, not interpolated."""
        token = "vault:v1:lookup-token"
        self.db.aql.execute.return_value = iter([{"_key": "1", "_id": "person/1", "ssn_encrypted": token}])

        results = self.store.find("person", {"ssn_encrypted": token}, limit=10)

        assert results == [{"_key": "1", "ssn_encrypted": token}]
        query, = self.db.aql.execute.call_args.args
        bind_vars = self.db.aql.execute.call_args.kwargs["bind_vars"]
        assert token not in query
        assert "ssn_encrypted" not in query
        assert bind_vars["@collection"] == "person"
        assert bind_vars["column0"] == "ssn_encrypted"
        assert bind_vars["value0"] == token
        assert bind_vars["limit"] == 10

    def test_close(self) -> None:
        self.store.close()

        self.arango_client.close.assert_called_once()
