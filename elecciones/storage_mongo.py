# elecciones/storage_mongo.py
"""MongoDB backend.

Casts run inside a multi-document transaction (``with_transaction``), so the
server must be a replica set. Two casts touching the same voter document
conflict; the driver retries the losing callback, which then reads the
committed ``ha_votado`` and stops with ``AlreadyVoted``. The unique index on
``votes(electionId, voterId)`` backs this up at the storage level.
"""
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, TypeVar

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from elecciones.config import MONGO_DB, MONGO_TIMEOUT_MS, MONGO_URI
from elecciones.errors import StoreUnavailable
from elecciones.storage import DuplicateRecord, Record, Store, Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (collection, keys, unique)
INDEXES = [
    ("organizations", [("slug", ASCENDING)], True),
    ("users", [("organizationId", ASCENDING), ("codigo", ASCENDING)], True),
    ("elections", [("organizationId", ASCENDING)], False),
    ("candidates", [("eleccion_id", ASCENDING)], False),
    ("votes", [("electionId", ASCENDING), ("voterId", ASCENDING)], True),
    ("votes", [("receipt", ASCENDING)], True),
    ("votes", [("organizationId", ASCENDING)], False),
]


def _to_mongo(record: Record) -> Record:
    doc = dict(record)
    doc["_id"] = doc.pop("id")
    return doc


def _from_mongo(doc: Optional[Record]) -> Optional[Record]:
    if doc is None:
        return None
    record = dict(doc)
    record["id"] = str(record.pop("_id"))
    return record


def _query(filters: Dict[str, Any]) -> Dict[str, Any]:
    return {("_id" if field == "id" else field): value for field, value in filters.items()}


@contextmanager
def _translate_errors(collection: str = ""):
    try:
        yield
    except DuplicateKeyError as e:
        keys = tuple((e.details or {}).get("keyPattern", {}).keys())
        raise DuplicateRecord(collection or "unknown", keys) from e
    except (ConnectionFailure, ServerSelectionTimeoutError, ExecutionTimeout) as e:
        logger.error(f"MongoDB unavailable: {e}")
        raise StoreUnavailable() from e


class MongoTransaction(Transaction):
    def __init__(self, db, session):
        self.db = db
        self.session = session

    def get(self, collection: str, record_id: str, for_update: bool = False) -> Optional[Record]:
        # Snapshot reads inside the transaction; a concurrent write to the same
        # document surfaces as a write conflict when this transaction writes.
        return _from_mongo(self.db[collection].find_one({"_id": record_id}, session=self.session))

    def find(self, collection: str, **filters: Any) -> List[Record]:
        cursor = self.db[collection].find(_query(filters), session=self.session)
        return [_from_mongo(doc) for doc in cursor]

    def allocate_id(self, collection: str) -> str:
        return str(ObjectId())

    def insert(self, collection: str, record: Record) -> str:
        record = dict(record)
        record.setdefault("id", self.allocate_id(collection))
        try:
            self.db[collection].insert_one(_to_mongo(record), session=self.session)
        except DuplicateKeyError as e:
            keys = tuple((e.details or {}).get("keyPattern", {}).keys())
            raise DuplicateRecord(collection, keys) from e
        return record["id"]

    def update(self, collection: str, record_id: str, patch: Record) -> None:
        patch = {k: v for k, v in patch.items() if k != "id"}
        result = self.db[collection].update_one({"_id": record_id}, {"$set": patch}, session=self.session)
        if result.matched_count == 0:
            raise KeyError(f"{collection}/{record_id} does not exist")

    def delete_many(self, collection: str, **filters: Any) -> int:
        return self.db[collection].delete_many(_query(filters), session=self.session).deleted_count


class MongoStore(Store):
    def __init__(self, uri: str = MONGO_URI, db_name: str = MONGO_DB, client: Optional[MongoClient] = None):
        """Initialize MongoDB connection"""
        try:
            self.client = client or MongoClient(uri, serverSelectionTimeoutMS=MONGO_TIMEOUT_MS)
            self.db = self.client[db_name]
            self._ensure_indexes()
            # Test connection
            self.client.server_info()
            logger.info(f"Connected to MongoDB, database: {db_name}")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise StoreUnavailable() from e

    def _ensure_indexes(self) -> None:
        for collection, keys, unique in INDEXES:
            self.db[collection].create_index(keys, unique=unique)

    def transactionally(self, fn: Callable[[Transaction], T]) -> T:
        with _translate_errors():
            with self.client.start_session() as session:
                return session.with_transaction(lambda s: fn(MongoTransaction(self.db, s)))

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        with _translate_errors(collection):
            return _from_mongo(self.db[collection].find_one({"_id": record_id}))

    def find(self, collection: str, **filters: Any) -> List[Record]:
        with _translate_errors(collection):
            return [_from_mongo(doc) for doc in self.db[collection].find(_query(filters))]

    def insert(self, collection: str, record: Record) -> str:
        record = dict(record)
        record.setdefault("id", str(ObjectId()))
        with _translate_errors(collection):
            self.db[collection].insert_one(_to_mongo(record))
        return record["id"]

    def update(self, collection: str, record_id: str, patch: Record) -> None:
        patch = {k: v for k, v in patch.items() if k != "id"}
        with _translate_errors(collection):
            result = self.db[collection].update_one({"_id": record_id}, {"$set": patch})
        if result.matched_count == 0:
            raise KeyError(f"{collection}/{record_id} does not exist")

    def delete_many(self, collection: str, **filters: Any) -> int:
        with _translate_errors(collection):
            return self.db[collection].delete_many(_query(filters)).deleted_count

    def close(self) -> None:
        """Close MongoDB connection"""
        try:
            self.client.close()
            logger.info("MongoDB connection closed")
        except PyMongoError as e:
            logger.error(f"Error closing MongoDB connection: {e}")
