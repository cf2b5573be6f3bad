"""
Document store

Every record lives in a named collection ("user", "product", "cart") and is
handed to callers as a plain dict whose ``_id`` has been turned into a string
``id``. Two backends share the same methods:

- MongoStore: pymongo against a real MongoDB server
- MemoryStore: in-process dicts, for local runs (DATABASE_URL=memory://) and tests
"""
import copy
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import ConflictError, StoreError
from settings import Settings

logger = logging.getLogger(__name__)

MEMORY_URL = "memory://"


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    # Convert ObjectId in nested fields if any
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, list):
            doc[k] = [str(i) if isinstance(i, ObjectId) else i for i in v]
    return doc


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id, returning None for anything that is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    # ObjectId(None) would mint a fresh id
    if value is None:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


@contextmanager
def driver_errors(action: str):
    try:
        yield
    except DuplicateKeyError as exc:
        raise ConflictError() from exc
    except PyMongoError as exc:
        logger.error("store %s failed: %s", action, exc)
        raise StoreError() from exc


class MongoStore:
    def __init__(self, url: str, name: str, timeout_ms: int = 5000):
        self.client = MongoClient(
            url,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
        )
        self.db = self.client[name]
        self.name = name

    def find(self, collection: str, query: Optional[dict] = None) -> List[dict]:
        with driver_errors("find"):
            return [serialize_doc(d) for d in self.db[collection].find(query or {})]

    def find_one(self, collection: str, query: dict) -> Optional[dict]:
        with driver_errors("find_one"):
            return serialize_doc(self.db[collection].find_one(query))

    def find_by_id(self, collection: str, doc_id: Any) -> Optional[dict]:
        obj_id = to_object_id(doc_id)
        if obj_id is None:
            return None
        return self.find_one(collection, {"_id": obj_id})

    def create(self, collection: str, data: dict) -> dict:
        doc = dict(data)
        with driver_errors("create"):
            self.db[collection].insert_one(doc)
        return serialize_doc(doc)

    def update(self, collection: str, doc_id: Any, fields: dict) -> Optional[dict]:
        obj_id = to_object_id(doc_id)
        if obj_id is None:
            return None
        if not fields:
            return self.find_by_id(collection, obj_id)
        with driver_errors("update"):
            updated = self.db[collection].find_one_and_update(
                {"_id": obj_id}, {"$set": fields}, return_document=ReturnDocument.AFTER
            )
        return serialize_doc(updated)

    def delete(self, collection: str, doc_id: Any) -> Optional[dict]:
        obj_id = to_object_id(doc_id)
        if obj_id is None:
            return None
        with driver_errors("delete"):
            return serialize_doc(self.db[collection].find_one_and_delete({"_id": obj_id}))

    def create_index(self, collection: str, field: str, unique: bool = False):
        with driver_errors("create_index"):
            self.db[collection].create_index(field, unique=unique)

    def ping(self) -> bool:
        with driver_errors("ping"):
            self.client.admin.command("ping")
        return True

    def collection_names(self) -> List[str]:
        with driver_errors("collection_names"):
            return self.db.list_collection_names()

    def close(self):
        self.client.close()


class MemoryStore:
    """Keeps every collection in a dict keyed by ObjectId, in insertion order."""

    def __init__(self, name: str = "memory"):
        self.name = name
        self._collections: Dict[str, Dict[ObjectId, dict]] = {}
        self._unique: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def _docs(self, collection: str) -> Dict[ObjectId, dict]:
        return self._collections.setdefault(collection, {})

    @staticmethod
    def _matches(doc: dict, query: dict) -> bool:
        return all(doc.get(k) == v for k, v in query.items())

    @staticmethod
    def _out(doc: Optional[dict]) -> Optional[dict]:
        return serialize_doc(copy.deepcopy(doc)) if doc else None

    def _check_unique(self, collection: str, doc: dict, skip: Optional[ObjectId] = None):
        for field in self._unique.get(collection, []):
            for obj_id, existing in self._docs(collection).items():
                if obj_id != skip and field in doc and existing.get(field) == doc[field]:
                    raise ConflictError()

    def find(self, collection: str, query: Optional[dict] = None) -> List[dict]:
        with self._lock:
            return [self._out(d) for d in self._docs(collection).values() if self._matches(d, query or {})]

    def find_one(self, collection: str, query: dict) -> Optional[dict]:
        with self._lock:
            for doc in self._docs(collection).values():
                if self._matches(doc, query):
                    return self._out(doc)
        return None

    def find_by_id(self, collection: str, doc_id: Any) -> Optional[dict]:
        obj_id = to_object_id(doc_id)
        with self._lock:
            return self._out(self._docs(collection).get(obj_id))

    def create(self, collection: str, data: dict) -> dict:
        doc = copy.deepcopy(data)
        doc["_id"] = ObjectId()
        with self._lock:
            self._check_unique(collection, doc)
            self._docs(collection)[doc["_id"]] = doc
            return self._out(doc)

    def update(self, collection: str, doc_id: Any, fields: dict) -> Optional[dict]:
        obj_id = to_object_id(doc_id)
        with self._lock:
            doc = self._docs(collection).get(obj_id)
            if doc is None:
                return None
            self._check_unique(collection, fields, skip=obj_id)
            doc.update(copy.deepcopy(fields))
            return self._out(doc)

    def delete(self, collection: str, doc_id: Any) -> Optional[dict]:
        obj_id = to_object_id(doc_id)
        with self._lock:
            return self._out(self._docs(collection).pop(obj_id, None))

    def create_index(self, collection: str, field: str, unique: bool = False):
        if unique:
            with self._lock:
                fields = self._unique.setdefault(collection, [])
                if field not in fields:
                    fields.append(field)

    def ping(self) -> bool:
        return True

    def collection_names(self) -> List[str]:
        with self._lock:
            return sorted(self._collections)

    def close(self):
        with self._lock:
            self._collections.clear()


def open_store(settings: Settings):
    if settings.database_url.startswith(MEMORY_URL):
        logger.info("using in-memory store %r", settings.database_name)
        return MemoryStore(settings.database_name)
    logger.info("connecting to MongoDB database %r", settings.database_name)
    return MongoStore(settings.database_url, settings.database_name, settings.database_timeout_ms)
