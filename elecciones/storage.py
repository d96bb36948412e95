# elecciones/storage.py
"""Storage adapter used by the ledger, plus the in-process backend.

Records are plain dicts carrying their own ``"id"``. The ledger only needs
``get_voter``, ``transactionally``, ``insert`` and ``update``; the rest serves
the admin side.

:class:`MemoryStore` serializes transactions per record: the first
``get(..., for_update=True)``, write or delete of a record inside a
transaction takes that record's lock and keeps it until the transaction ends.
Writes are buffered and applied on commit, so a transaction that raises
leaves nothing behind. A commit only touches the records it wrote: unique
keys are checked against per-collection indexes, and with ``path`` set the
writes are appended to a journal next to the JSON snapshot. The journal is
folded back into the snapshot when the store is opened or closed.
"""
import copy
import json
import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from elecciones.errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")
Record = Dict[str, Any]
Write = Tuple[str, str, Optional[Record]]

COLLECTIONS = ("organizations", "users", "elections", "candidates", "votes")

# Field combinations that must be unique per collection.
UNIQUE_KEYS: Dict[str, List[Tuple[str, ...]]] = {
    "organizations": [("slug",)],
    "users": [("organizationId", "codigo")],
    "votes": [("electionId", "voterId"), ("receipt",)],
}


class DuplicateRecord(Exception):
    """A write collided with a unique key."""

    def __init__(self, collection: str, keys: Tuple[str, ...] = ()):
        self.collection = collection
        self.keys = keys
        super().__init__(f"duplicate {collection} record on {', '.join(keys) or 'id'}")


def _matches(record: Record, filters: Dict[str, Any]) -> bool:
    return all(record.get(field) == value for field, value in filters.items())


def _key_value(record: Record, keys: Tuple[str, ...]) -> tuple:
    return tuple(record.get(k) for k in keys)


class Transaction(ABC):
    @abstractmethod
    def get(self, collection: str, record_id: str, for_update: bool = False) -> Optional[Record]:
        ...

    @abstractmethod
    def find(self, collection: str, **filters: Any) -> List[Record]:
        ...

    @abstractmethod
    def allocate_id(self, collection: str) -> str:
        ...

    @abstractmethod
    def insert(self, collection: str, record: Record) -> str:
        ...

    @abstractmethod
    def update(self, collection: str, record_id: str, patch: Record) -> None:
        ...

    @abstractmethod
    def delete_many(self, collection: str, **filters: Any) -> int:
        ...

    def get_voter(self, voter_id: str) -> Optional[Record]:
        """Read a user and hold it until the transaction ends."""
        return self.get("users", voter_id, for_update=True)


class Store(ABC):
    @abstractmethod
    def transactionally(self, fn: Callable[[Transaction], T]) -> T:
        """Run ``fn`` as one atomic unit and return its result."""

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[Record]:
        ...

    @abstractmethod
    def find(self, collection: str, **filters: Any) -> List[Record]:
        ...

    def get_voter(self, voter_id: str) -> Optional[Record]:
        return self.get("users", voter_id)

    def insert(self, collection: str, record: Record) -> str:
        return self.transactionally(lambda tx: tx.insert(collection, record))

    def update(self, collection: str, record_id: str, patch: Record) -> None:
        self.transactionally(lambda tx: tx.update(collection, record_id, patch))

    def delete(self, collection: str, record_id: str) -> bool:
        return self.delete_many(collection, id=record_id) > 0

    def delete_many(self, collection: str, **filters: Any) -> int:
        return self.transactionally(lambda tx: tx.delete_many(collection, **filters))

    def close(self) -> None:
        pass


def _read_db(path: str) -> Dict[str, Dict[str, Record]]:
    """
    Read the JSON snapshot of the store.
    A missing or empty file starts a fresh store; a corrupted one is an error,
    votes are never silently discarded.
    """
    empty = {name: {} for name in COLLECTIONS}
    if not os.path.exists(path) or os.path.getsize(path) == 0:
        return empty
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read store file {path}: {e}")
        raise StoreUnavailable(path=path) from e
    for name in COLLECTIONS:
        data.setdefault(name, {})
    return data


def _write_db(path: str, data: Dict[str, Dict[str, Record]]) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp_path, path)


def _replay_journal(path: str, data: Dict[str, Dict[str, Record]]) -> int:
    """
    Apply the committed transactions in the journal at ``path`` to ``data``.
    One line per commit. A torn last line is a commit that never finished and
    is dropped; a bad line anywhere else is an error.
    """
    if not os.path.exists(path):
        return 0
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = [line for line in f.read().split("\n") if line.strip()]
    except OSError as e:
        logger.error(f"Could not read store journal {path}: {e}")
        raise StoreUnavailable(path=path) from e

    replayed = 0
    for number, line in enumerate(lines, start=1):
        try:
            writes = json.loads(line)
        except json.JSONDecodeError as e:
            if number == len(lines):
                logger.warning(f"Dropping unfinished commit at the end of {path}")
                break
            logger.error(f"Corrupted store journal {path} at line {number}")
            raise StoreUnavailable(path=path) from e
        for collection, record_id, record in writes:
            if record is None:
                data[collection].pop(record_id, None)
            else:
                data[collection][record_id] = record
        replayed += 1
    return replayed


class _MemoryTransaction(Transaction):
    def __init__(self, store: "MemoryStore"):
        self._store = store
        # (collection, id) -> record, or None for a pending delete
        self._writes: Dict[Tuple[str, str], Optional[Record]] = {}
        self._held: List[threading.Lock] = []
        self._held_keys: set = set()

    def _lock(self, collection: str, record_id: str) -> None:
        key = (collection, record_id)
        if key in self._held_keys:
            return
        lock = self._store._record_lock(key)
        lock.acquire()
        self._held.append(lock)
        self._held_keys.add(key)

    def release(self) -> None:
        while self._held:
            self._held.pop().release()
        self._held_keys.clear()

    def _view(self, collection: str) -> Dict[str, Record]:
        view = self._store._snapshot(collection)
        for (name, record_id), record in self._writes.items():
            if name != collection:
                continue
            if record is None:
                view.pop(record_id, None)
            else:
                view[record_id] = record
        return view

    def get(self, collection: str, record_id: str, for_update: bool = False) -> Optional[Record]:
        if for_update:
            self._lock(collection, record_id)
        key = (collection, record_id)
        if key in self._writes:
            record = self._writes[key]
        else:
            record = self._store._read(collection, record_id)
        return copy.deepcopy(record)

    def find(self, collection: str, **filters: Any) -> List[Record]:
        return [copy.deepcopy(r) for r in self._view(collection).values() if _matches(r, filters)]

    def allocate_id(self, collection: str) -> str:
        return uuid.uuid4().hex

    def insert(self, collection: str, record: Record) -> str:
        record = copy.deepcopy(record)
        record_id = record.get("id") or self.allocate_id(collection)
        record["id"] = record_id
        self._lock(collection, record_id)
        if self.get(collection, record_id) is not None:
            raise DuplicateRecord(collection)
        self._writes[(collection, record_id)] = record
        return record_id

    def update(self, collection: str, record_id: str, patch: Record) -> None:
        self._lock(collection, record_id)
        current = self.get(collection, record_id)
        if current is None:
            raise KeyError(f"{collection}/{record_id} does not exist")
        current.update(copy.deepcopy(patch))
        current["id"] = record_id
        self._writes[(collection, record_id)] = current

    def delete_many(self, collection: str, **filters: Any) -> int:
        candidates = sorted(r["id"] for r in self._view(collection).values() if _matches(r, filters))
        deleted = 0
        for record_id in candidates:
            # waits for any transaction still writing this record
            self._lock(collection, record_id)
            current = self.get(collection, record_id)
            if current is None or not _matches(current, filters):
                continue
            self._writes[(collection, record_id)] = None
            deleted += 1
        return deleted

    def pending(self) -> List[Write]:
        return [(collection, record_id, record) for (collection, record_id), record in self._writes.items()]


class MemoryStore(Store):
    def __init__(self, path: Optional[str] = None):
        self.path = path
        self.journal_path = f"{path}.journal" if path else None
        self._data_lock = threading.RLock()
        self._journal_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._record_locks: Dict[Tuple[str, str], threading.Lock] = {}
        if path:
            self._data = _read_db(path)
            replayed = _replay_journal(self.journal_path, self._data)
            self._compact()
            logger.info(f"Loaded store file {path}, replayed {replayed} journaled commits")
        else:
            self._data = {name: {} for name in COLLECTIONS}
        self._indexes = self._build_indexes()

    def _build_indexes(self) -> Dict[str, Dict[Tuple[str, ...], Dict[tuple, str]]]:
        indexes = {}
        for collection, key_sets in UNIQUE_KEYS.items():
            indexes[collection] = {}
            for keys in key_sets:
                index = indexes[collection][keys] = {}
                for record_id, record in self._data[collection].items():
                    value = _key_value(record, keys)
                    if value in index:
                        logger.error(f"Stored {collection} break the unique key {keys}: {value}")
                        raise StoreUnavailable(path=self.path)
                    index[value] = record_id
        return indexes

    def _compact(self) -> None:
        """Fold the journal into the snapshot."""
        try:
            _write_db(self.path, self._data)
            if os.path.exists(self.journal_path):
                os.remove(self.journal_path)
        except OSError as e:
            logger.error(f"Could not write store file {self.path}: {e}")
            raise StoreUnavailable(path=self.path) from e

    def _record_lock(self, key: Tuple[str, str]) -> threading.Lock:
        with self._locks_guard:
            lock = self._record_locks.get(key)
            if lock is None:
                lock = self._record_locks[key] = threading.Lock()
            return lock

    def _read(self, collection: str, record_id: str) -> Optional[Record]:
        with self._data_lock:
            return copy.deepcopy(self._data[collection].get(record_id))

    def _snapshot(self, collection: str) -> Dict[str, Record]:
        with self._data_lock:
            return dict(self._data[collection])

    def _check_unique(self, writes: List[Write]) -> None:
        """Reject ``writes`` if any written record takes a key value held elsewhere."""
        released = set()
        for collection, record_id, _ in writes:
            old = self._data[collection].get(record_id)
            if old is None:
                continue
            for keys in UNIQUE_KEYS.get(collection, []):
                released.add((collection, keys, _key_value(old, keys)))

        claimed: Dict[tuple, str] = {}
        for collection, record_id, record in writes:
            if record is None:
                continue
            for keys in UNIQUE_KEYS.get(collection, []):
                value = _key_value(record, keys)
                slot = (collection, keys, value)
                owner = self._indexes[collection][keys].get(value)
                if owner is not None and owner != record_id and slot not in released:
                    raise DuplicateRecord(collection, keys)
                if claimed.setdefault(slot, record_id) != record_id:
                    raise DuplicateRecord(collection, keys)

    def _apply(self, writes: List[Write]) -> List[Write]:
        """
        Apply ``writes`` to the data and claim their key values in the indexes.
        Returns the writes that undo them. The key values the old records held
        stay claimed until :meth:`_drop_stale_keys` runs with the returned list.
        """
        undo = [(name, record_id, self._data[name].get(record_id)) for name, record_id, _ in writes]
        for collection, record_id, record in writes:
            if record is None:
                self._data[collection].pop(record_id, None)
                continue
            self._data[collection][record_id] = record
            for keys in UNIQUE_KEYS.get(collection, []):
                self._indexes[collection][keys][_key_value(record, keys)] = record_id
        return undo

    def _drop_stale_keys(self, old_records: List[Write]) -> None:
        for collection, record_id, old in old_records:
            if old is None:
                continue
            current = self._data[collection].get(record_id)
            for keys in UNIQUE_KEYS.get(collection, []):
                value = _key_value(old, keys)
                index = self._indexes[collection][keys]
                if index.get(value) != record_id:
                    continue
                if current is None or _key_value(current, keys) != value:
                    del index[value]

    def _journal(self, writes: List[Write]) -> None:
        line = json.dumps(writes, ensure_ascii=False)
        with self._journal_lock:
            with open(self.journal_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()
                os.fsync(f.fileno())

    def _commit(self, tx: _MemoryTransaction) -> None:
        writes = tx.pending()
        if not writes:
            return
        with self._data_lock:
            self._check_unique(writes)
            undo = self._apply(writes)
            if not self.path:
                self._drop_stale_keys(undo)
                return
        # tx still holds the written records, and the key values they gave up
        # stay claimed, so the undo below cannot collide with another commit.
        try:
            self._journal(writes)
        except OSError as e:
            logger.error(f"Could not append to store journal {self.journal_path}: {e}")
            with self._data_lock:
                self._apply(undo)
                self._drop_stale_keys(writes)
            raise StoreUnavailable(path=self.journal_path) from e
        with self._data_lock:
            self._drop_stale_keys(undo)

    def transactionally(self, fn: Callable[[Transaction], T]) -> T:
        tx = _MemoryTransaction(self)
        try:
            result = fn(tx)
            self._commit(tx)
            return result
        finally:
            tx.release()

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        return self._read(collection, record_id)

    def find(self, collection: str, **filters: Any) -> List[Record]:
        with self._data_lock:
            records = list(self._data[collection].values())
        return [copy.deepcopy(r) for r in records if _matches(r, filters)]

    def close(self) -> None:
        if not self.path:
            return
        with self._data_lock, self._journal_lock:
            self._compact()
        logger.info(f"Store file {self.path} compacted")
