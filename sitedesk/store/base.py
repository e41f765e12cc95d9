"""Document store interface.

Sites, clients and domain claims live behind a small document-store API so
the lifecycle logic does not depend on the persistence technology:

- Non-transactional reads: get(), query(), list().
- run_transaction(fn): calls fn(tx) and commits its staged writes atomically.
  Reads made through tx form the read set; commit fails with
  TransactionConflict if any of them changed since it was read, and
  run_transaction retries fn from scratch.

Transaction bodies must issue every read before their first write. A read
after a write raises ReadAfterWriteError instead of returning data that
ignores the staged writes.

Documents are plain dicts. Each collection has one key field which is
always present in returned documents.
"""

import copy
import logging
import uuid
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

# collection name -> key field
COLLECTIONS = {
    "sites": "id",
    "clients": "id",
    "domain_claims": "domain",
}

DEFAULT_MAX_ATTEMPTS = 5


class StoreError(Exception):
    """Base class for document store failures."""


class TransactionConflict(StoreError):
    """A document in the read set changed before commit. Retryable."""


class TransactionAborted(StoreError):
    """Gave up after max_attempts conflicting commits."""


class ReadAfterWriteError(StoreError):
    """A transaction read was issued after a write in the same transaction."""


class DocumentNotFoundError(StoreError, LookupError):
    """update() targeted a document that does not exist at commit time."""


def new_version():
    """Fresh version token. Random so a delete + re-create never reuses one."""
    return uuid.uuid4().hex


def check_collection(collection):
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection '{collection}'")
    return COLLECTIONS[collection]


class Transaction(ABC):
    """One attempt of a transaction body. Created by DocumentStore._begin()."""

    def __init__(self):
        # (collection, key) -> version token seen, None if absent
        self._read_set = {}
        # (collection, key) -> ("set", doc) | ("update", fields) | ("delete", None)
        self._writes = {}
        self._closed = False

    # --- reads ---

    def get(self, collection, key):
        """Read one document into the read set. Returns a copy, or None."""
        check_collection(collection)
        if self._writes:
            raise ReadAfterWriteError(
                f"Read of {collection}/{key} after a write in the same transaction"
            )
        version, doc = self._read(collection, key)
        # First read wins: a later re-read must not mask a change in between.
        self._read_set.setdefault((collection, key), version)
        return copy.deepcopy(doc) if doc is not None else None

    # --- writes (staged until commit) ---

    def set(self, collection, key, doc):
        """Create or fully replace a document."""
        key_field = check_collection(collection)
        data = dict(doc)
        data[key_field] = key
        self._writes[(collection, key)] = ("set", data)

    def update(self, collection, key, fields):
        """Merge fields into an existing document."""
        check_collection(collection)
        pending = self._writes.get((collection, key))
        if pending and pending[0] == "set":
            pending[1].update(fields)
        elif pending and pending[0] == "update":
            pending[1].update(fields)
        else:
            self._writes[(collection, key)] = ("update", dict(fields))

    def delete(self, collection, key):
        check_collection(collection)
        self._writes[(collection, key)] = ("delete", None)

    @property
    def has_writes(self):
        return bool(self._writes)

    # --- lifecycle, driven by DocumentStore.run_transaction ---

    def commit(self):
        if self._closed:
            raise StoreError("Transaction already closed")
        self._closed = True
        self._commit()

    def rollback(self):
        if self._closed:
            return
        self._closed = True
        self._rollback()

    @abstractmethod
    def _read(self, collection, key):
        """Return (version, doc) for a document, (None, None) if absent."""

    @abstractmethod
    def _commit(self):
        """Validate the read set and apply writes, or raise TransactionConflict."""

    def _rollback(self):
        pass


class DocumentStore(ABC):
    """Backend-neutral store. Subclasses provide _begin() and the plain reads."""

    def __init__(self, max_attempts=DEFAULT_MAX_ATTEMPTS):
        self.max_attempts = max_attempts

    def new_id(self):
        return str(uuid.uuid4())

    def run_transaction(self, fn, max_attempts=None):
        """Run fn(tx) until it commits without a read-set conflict.

        Exceptions raised by fn (or any non-conflict commit failure) roll the
        attempt back and propagate. Nothing is retried at the business level.
        """
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            tx = self._begin()
            try:
                result = fn(tx)
                tx.commit()
                return result
            except TransactionConflict:
                tx.rollback()
                logger.info(
                    f"Transaction conflict on attempt {attempt}/{attempts}, retrying"
                )
            except Exception:
                tx.rollback()
                raise
        logger.warning(f"Transaction aborted after {attempts} conflicting attempts")
        raise TransactionAborted(
            f"Transaction aborted after {attempts} conflicting attempts"
        )

    @abstractmethod
    def _begin(self):
        """Return a new Transaction bound to this store."""

    @abstractmethod
    def get(self, collection, key):
        """Non-transactional read of one document (copy) or None."""

    @abstractmethod
    def query(self, collection, field, value):
        """Non-transactional equality query. Returns a list of documents."""

    @abstractmethod
    def list(self, collection):
        """Non-transactional read of every document in a collection."""
