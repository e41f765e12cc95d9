"""In-memory document store.

Same transaction semantics as the SQL store: per-document version tokens,
read-set validation at commit, writes applied atomically under one lock.
Used as the test double and for STORE_BACKEND=memory demos.
"""

import copy
import threading
from datetime import datetime, timezone

from sitedesk.store.base import (
    COLLECTIONS,
    DEFAULT_MAX_ATTEMPTS,
    DocumentNotFoundError,
    DocumentStore,
    Transaction,
    TransactionConflict,
    check_collection,
    new_version,
)
from sitedesk.store.schema import blank_document, document_fields


def _declared(collection, data):
    """Drop fields the collection does not carry, as the SQL store does."""
    fields = document_fields(collection)
    return {k: copy.deepcopy(v) for k, v in data.items() if k in fields}


class MemoryTransaction(Transaction):

    def __init__(self, store):
        super().__init__()
        self._store = store

    def _read(self, collection, key):
        with self._store._lock:
            entry = self._store._docs[collection].get(key)
            if entry is None:
                return None, None
            version, doc = entry
            return version, copy.deepcopy(doc)

    def _commit(self):
        store = self._store
        with store._lock:
            for (collection, key), seen in self._read_set.items():
                entry = store._docs[collection].get(key)
                current = entry[0] if entry is not None else None
                if current != seen:
                    raise TransactionConflict(
                        f"{collection}/{key} changed since it was read"
                    )

            # Validate updates before touching anything so a failure
            # leaves the store unchanged.
            for (collection, key), (op, _) in self._writes.items():
                if op == "update" and key not in store._docs[collection]:
                    raise DocumentNotFoundError(f"{collection}/{key} does not exist")

            now = datetime.now(timezone.utc)
            for (collection, key), (op, data) in self._writes.items():
                docs = store._docs[collection]
                if op == "delete":
                    docs.pop(key, None)
                elif op == "set":
                    doc = blank_document(collection)
                    doc.update(_declared(collection, data))
                    previous = docs.get(key)
                    doc["created_at"] = (
                        previous[1].get("created_at") if previous else now
                    )
                    doc["updated_at"] = now
                    docs[key] = (new_version(), doc)
                else:
                    _, doc = docs[key]
                    doc = copy.deepcopy(doc)
                    doc.update(_declared(collection, data))
                    doc["updated_at"] = now
                    docs[key] = (new_version(), doc)


class MemoryDocumentStore(DocumentStore):

    def __init__(self, max_attempts=DEFAULT_MAX_ATTEMPTS):
        super().__init__(max_attempts)
        self._lock = threading.RLock()
        self._docs = {name: {} for name in COLLECTIONS}

    def _begin(self):
        return MemoryTransaction(self)

    def get(self, collection, key):
        check_collection(collection)
        with self._lock:
            entry = self._docs[collection].get(key)
            return copy.deepcopy(entry[1]) if entry is not None else None

    def query(self, collection, field, value):
        check_collection(collection)
        if field not in document_fields(collection):
            return []
        with self._lock:
            return [
                copy.deepcopy(doc)
                for _, doc in self._docs[collection].values()
                if doc.get(field) == value
            ]

    def list(self, collection):
        check_collection(collection)
        with self._lock:
            return [copy.deepcopy(doc) for _, doc in self._docs[collection].values()]

    def clear(self):
        """Drop every document (tests)."""
        with self._lock:
            for docs in self._docs.values():
                docs.clear()
