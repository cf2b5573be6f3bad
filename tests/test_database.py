"""Tests for the document stores and document serialization."""
from unittest.mock import patch

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError, ServerSelectionTimeoutError

from database import MemoryStore, MongoStore, open_store, serialize_doc, to_object_id
from errors import ConflictError, StoreError
from schemas import User
from settings import Settings
from stores import UserStore


class TestSerializeDoc:
    def test_id_becomes_string(self):
        obj_id = ObjectId()
        doc = serialize_doc({"_id": obj_id, "name": "x"})
        assert doc == {"id": str(obj_id), "name": "x"}

    def test_nested_object_ids_become_strings(self):
        ref = ObjectId()
        doc = serialize_doc({"_id": ObjectId(), "user": ref, "products": [ref, "raw"]})
        assert doc["user"] == str(ref)
        assert doc["products"] == [str(ref), "raw"]

    def test_empty_doc_passes_through(self):
        assert serialize_doc(None) is None


class TestToObjectId:
    @pytest.mark.parametrize("value", ["not-an-id", "", None, 42])
    def test_invalid_values_give_none(self, value):
        assert to_object_id(value) is None

    def test_valid_string(self):
        obj_id = ObjectId()
        assert to_object_id(str(obj_id)) == obj_id


class TestMemoryStore:
    def test_create_then_find_by_id(self):
        store = MemoryStore()
        created = store.create("product", {"name": "Lamp", "price": 10})
        assert store.find_by_id("product", created["id"]) == created

    def test_malformed_id_is_not_found(self):
        store = MemoryStore()
        assert store.find_by_id("product", "nope") is None
        assert store.update("product", "nope", {"price": 1}) is None
        assert store.delete("product", "nope") is None

    def test_returned_docs_are_copies(self):
        store = MemoryStore()
        created = store.create("cart", {"products": ["a"]})
        created["products"].append("b")
        assert store.find_by_id("cart", created["id"])["products"] == ["a"]

    def test_find_filters_on_equality(self):
        store = MemoryStore()
        store.create("user", {"email": "a@example.com"})
        store.create("user", {"email": "b@example.com"})
        assert [d["email"] for d in store.find("user", {"email": "b@example.com"})] == ["b@example.com"]
        assert len(store.find("user")) == 2

    def test_update_sets_only_given_fields(self):
        store = MemoryStore()
        created = store.create("product", {"name": "Lamp", "price": 10})
        updated = store.update("product", created["id"], {"price": 12})
        assert updated == {"id": created["id"], "name": "Lamp", "price": 12}

    def test_delete_returns_removed_doc(self):
        store = MemoryStore()
        created = store.create("product", {"name": "Lamp"})
        assert store.delete("product", created["id"]) == created
        assert store.find_by_id("product", created["id"]) is None

    def test_unique_index_rejects_duplicates(self):
        store = MemoryStore()
        store.create_index("user", "email", unique=True)
        store.create("user", {"email": "a@example.com"})
        with pytest.raises(ConflictError):
            store.create("user", {"email": "a@example.com"})

    def test_collection_names(self):
        store = MemoryStore()
        store.create("user", {})
        store.create("cart", {})
        assert store.collection_names() == ["cart", "user"]


def test_open_store_memory_url():
    store = open_store(Settings(database_url="memory://", database_name="dev"))
    assert isinstance(store, MemoryStore)
    assert store.name == "dev"


@pytest.fixture
def mongo():
    """A MongoStore whose driver client is a mock; every collection is the same mock."""
    with patch("database.MongoClient") as client_cls:
        store = MongoStore("mongodb://db.internal:27017", "shop", timeout_ms=1500)
        store.collection_mock = store.db.__getitem__.return_value
        store.client_cls = client_cls
        yield store


class TestMongoStore:
    """
    MongoDB backend with the driver replaced by a mock

    Validates how driver results and driver failures are translated into
    documents and error kinds, without a running server.
    """

    def test_timeouts_are_passed_to_the_driver(self, mongo):
        # Assert
        mongo.client_cls.assert_called_once_with(
            "mongodb://db.internal:27017",
            serverSelectionTimeoutMS=1500,
            connectTimeoutMS=1500,
            socketTimeoutMS=1500,
        )

    def test_create_returns_serialized_doc(self, mongo):
        # Arrange
        obj_id = ObjectId()
        mongo.collection_mock.insert_one.side_effect = lambda doc: doc.__setitem__("_id", obj_id)

        # Act
        created = mongo.create("product", {"name": "Lamp"})

        # Assert
        assert created == {"id": str(obj_id), "name": "Lamp"}

    def test_duplicate_key_becomes_conflict(self, mongo):
        # Arrange
        mongo.collection_mock.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")

        # Act & Assert
        with pytest.raises(ConflictError):
            UserStore(mongo).create(
                User(name="Alice", email="alice@example.com", password="x", token="t")
            )

    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.find("product"),
            lambda s: s.find_one("user", {"email": "a@example.com"}),
            lambda s: s.create("cart", {}),
            lambda s: s.update("product", str(ObjectId()), {"price": 1}),
            lambda s: s.delete("product", str(ObjectId())),
            lambda s: s.create_index("user", "email", unique=True),
        ],
    )
    def test_driver_failures_become_store_errors(self, mongo, call):
        # Arrange
        failure = ServerSelectionTimeoutError("no servers")
        for method in ("find", "find_one", "insert_one", "find_one_and_update", "find_one_and_delete", "create_index"):
            getattr(mongo.collection_mock, method).side_effect = failure

        # Act & Assert
        with pytest.raises(StoreError):
            call(mongo)

    def test_ping_failure_becomes_store_error(self, mongo):
        # Arrange
        mongo.client.admin.command.side_effect = PyMongoError("down")

        # Act & Assert
        with pytest.raises(StoreError):
            mongo.ping()

    def test_malformed_ids_never_reach_the_driver(self, mongo):
        # Act
        results = [
            mongo.find_by_id("product", "not-an-id"),
            mongo.update("product", "not-an-id", {"price": 1}),
            mongo.delete("product", "not-an-id"),
        ]

        # Assert
        assert results == [None, None, None]
        mongo.collection_mock.find_one.assert_not_called()
        mongo.collection_mock.find_one_and_update.assert_not_called()
        mongo.collection_mock.find_one_and_delete.assert_not_called()

    def test_empty_update_reads_instead_of_writing(self, mongo):
        # Arrange
        obj_id = ObjectId()
        mongo.collection_mock.find_one.return_value = {"_id": obj_id, "name": "Lamp"}

        # Act
        doc = mongo.update("product", str(obj_id), {})

        # Assert
        assert doc == {"id": str(obj_id), "name": "Lamp"}
        mongo.collection_mock.find_one_and_update.assert_not_called()

    def test_close_closes_client(self, mongo):
        # Act
        mongo.close()

        # Assert
        mongo.client.close.assert_called_once_with()
