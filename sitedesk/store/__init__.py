"""Site store selection.

The backend is chosen once per app from STORE_BACKEND and kept in
app.extensions; request handlers fetch it with get_store() and pass it into
the service functions.
"""

from flask import current_app

from sitedesk.store.base import (  # noqa: F401
    DocumentStore,
    ReadAfterWriteError,
    StoreError,
    TransactionAborted,
    TransactionConflict,
)
from sitedesk.store.memory import MemoryDocumentStore
from sitedesk.store.sql import SqlDocumentStore

EXTENSION_KEY = "site_store"


def build_store(backend, max_attempts):
    if backend == "memory":
        return MemoryDocumentStore(max_attempts=max_attempts)
    if backend == "sql":
        return SqlDocumentStore(max_attempts=max_attempts)
    raise ValueError(f"Unknown STORE_BACKEND '{backend}'")


def init_store(app, store=None):
    """Attach a store to the app. Pass `store` to inject one (tests)."""
    if store is None:
        store = build_store(
            app.config.get("STORE_BACKEND", "sql"),
            app.config.get("TRANSACTION_MAX_ATTEMPTS", 5),
        )
    app.extensions[EXTENSION_KEY] = store
    return store


def get_store():
    return current_app.extensions[EXTENSION_KEY]
