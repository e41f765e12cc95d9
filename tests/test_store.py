"""Tests for the document store — both backends.

Covers:
- Transactional get / set / update / delete
- Reads after writes are rejected
- Read-set conflicts are retried, then aborted
- Exceptions from the transaction body roll back and propagate
- Store selection from config
"""

import pytest

from sitedesk.store import build_store, get_store
from sitedesk.store.base import (
    DocumentNotFoundError,
    ReadAfterWriteError,
    TransactionAborted,
)
from sitedesk.store.memory import MemoryDocumentStore
from sitedesk.store.sql import SqlDocumentStore


def _add_client(store, name="Acme Plumbing"):
    client_id = store.new_id()
    store.run_transaction(
        lambda tx: tx.set("clients", client_id, {"full_name": name, "status": "active"})
    )
    return client_id


class TestBasicOperations:

    def test_set_then_get(self, store):
        client_id = _add_client(store)
        doc = store.get("clients", client_id)
        assert doc["id"] == client_id
        assert doc["full_name"] == "Acme Plumbing"
        assert "version" not in doc

    def test_documents_carry_every_field(self, store):
        client_id = _add_client(store)
        doc = store.get("clients", client_id)
        assert set(doc) == {
            "id", "full_name", "email", "email_lower", "phone",
            "phone_normalized", "status", "notes", "created_at", "updated_at",
        }
        assert doc["notes"] is None

        store.run_transaction(
            lambda tx: tx.set("domain_claims", "a.com", {"site_id": "s1"})
        )
        claim = store.get("domain_claims", "a.com")
        assert claim["client_id"] is None
        assert claim["repaired"] is False

    def test_undeclared_fields_are_dropped(self, store):
        client_id = _add_client(store)
        store.run_transaction(
            lambda tx: tx.update("clients", client_id, {"nickname": "Ace"})
        )
        assert "nickname" not in store.get("clients", client_id)
        assert store.query("clients", "nickname", None) == []

    def test_get_missing_returns_none(self, store):
        assert store.get("clients", "nope") is None

        def txn(tx):
            return tx.get("clients", "nope")

        assert store.run_transaction(txn) is None

    def test_update_merges_fields(self, store):
        client_id = _add_client(store)
        store.run_transaction(
            lambda tx: tx.update("clients", client_id, {"notes": "VIP"})
        )
        doc = store.get("clients", client_id)
        assert doc["notes"] == "VIP"
        assert doc["full_name"] == "Acme Plumbing"

    def test_update_missing_document_raises(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.run_transaction(
                lambda tx: tx.update("clients", "nope", {"notes": "x"})
            )

    def test_delete(self, store):
        client_id = _add_client(store)
        store.run_transaction(lambda tx: tx.delete("clients", client_id))
        assert store.get("clients", client_id) is None

    def test_claims_keyed_by_domain(self, store):
        store.run_transaction(
            lambda tx: tx.set("domain_claims", "foo.com", {"site_id": "s1", "client_id": "c1"})
        )
        claim = store.get("domain_claims", "foo.com")
        assert claim["domain"] == "foo.com"
        assert claim["site_id"] == "s1"

    def test_query_by_field(self, store):
        _add_client(store, "Acme Plumbing")
        _add_client(store, "Corner Bakery")
        found = store.query("clients", "full_name", "Corner Bakery")
        assert [c["full_name"] for c in found] == ["Corner Bakery"]
        assert store.query("clients", "full_name", "Nobody") == []

    def test_list(self, store):
        _add_client(store, "Acme Plumbing")
        _add_client(store, "Corner Bakery")
        names = sorted(c["full_name"] for c in store.list("clients"))
        assert names == ["Acme Plumbing", "Corner Bakery"]

    def test_unknown_collection(self, store):
        with pytest.raises(ValueError):
            store.get("widgets", "x")

    def test_returned_documents_are_copies(self, store):
        client_id = _add_client(store)
        doc = store.get("clients", client_id)
        doc["full_name"] = "Changed"
        assert store.get("clients", client_id)["full_name"] == "Acme Plumbing"


class TestTransactionRules:

    def test_read_after_write_rejected(self, store):
        client_id = _add_client(store)

        def txn(tx):
            tx.update("clients", client_id, {"notes": "first"})
            tx.get("clients", client_id)

        with pytest.raises(ReadAfterWriteError):
            store.run_transaction(txn)
        assert store.get("clients", client_id)["notes"] is None

    def test_body_exception_rolls_back_and_propagates(self, store):
        client_id = _add_client(store)
        calls = []

        def txn(tx):
            calls.append(1)
            tx.get("clients", client_id)
            tx.update("clients", client_id, {"notes": "never"})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            store.run_transaction(txn)
        assert len(calls) == 1
        assert store.get("clients", client_id)["notes"] is None

    def test_writes_commit_together(self, store):
        def txn(tx):
            tx.set("domain_claims", "a.com", {"site_id": "s1"})
            tx.set("domain_claims", "b.com", {"site_id": "s2"})
            tx.update("domain_claims", "a.com", {"client_id": "c1"})

        store.run_transaction(txn)
        assert store.get("domain_claims", "a.com")["client_id"] == "c1"
        assert store.get("domain_claims", "b.com")["site_id"] == "s2"


class TestOptimisticConflicts:
    """Concurrent writers are simulated by committing a second transaction
    from inside the first one's body, between its reads and its commit."""

    def test_conflict_is_retried_against_fresh_data(self, memory_store):
        client_id = _add_client(memory_store)
        attempts = []

        def interfering(tx):
            tx.update("clients", client_id, {"notes": "other writer"})

        def txn(tx):
            doc = tx.get("clients", client_id)
            attempts.append(doc["notes"])
            if len(attempts) == 1:
                memory_store.run_transaction(interfering)
            tx.update("clients", client_id, {"notes": f"{doc['notes']} + mine"})

        memory_store.run_transaction(txn)

        assert attempts == [None, "other writer"]
        assert memory_store.get("clients", client_id)["notes"] == "other writer + mine"

    def test_insert_of_read_absent_key_conflicts(self, memory_store):
        attempts = []

        def txn(tx):
            claim = tx.get("domain_claims", "foo.com")
            attempts.append(claim)
            if len(attempts) == 1:
                memory_store.run_transaction(
                    lambda inner: inner.set("domain_claims", "foo.com", {"site_id": "other"})
                )
            if claim is None:
                tx.set("domain_claims", "foo.com", {"site_id": "mine"})

        memory_store.run_transaction(txn)

        assert attempts[0] is None
        assert attempts[1]["site_id"] == "other"
        assert memory_store.get("domain_claims", "foo.com")["site_id"] == "other"

    def test_reread_does_not_hide_change(self, memory_store):
        client_id = _add_client(memory_store)
        attempts = []

        def txn(tx):
            first = tx.get("clients", client_id)
            attempts.append(first["notes"])
            if len(attempts) == 1:
                memory_store.run_transaction(
                    lambda inner: inner.update("clients", client_id, {"notes": "other writer"})
                )
            tx.get("clients", client_id)
            tx.update("clients", client_id, {"notes": f"seen {first['notes']}"})

        memory_store.run_transaction(txn)

        assert attempts == [None, "other writer"]
        assert memory_store.get("clients", client_id)["notes"] == "seen other writer"

    def test_aborts_after_max_attempts(self):
        store = MemoryDocumentStore(max_attempts=3)
        client_id = _add_client(store)
        attempts = []

        def txn(tx):
            tx.get("clients", client_id)
            attempts.append(1)
            store.run_transaction(
                lambda inner: inner.update("clients", client_id, {"notes": str(len(attempts))})
            )
            tx.update("clients", client_id, {"notes": "mine"})

        with pytest.raises(TransactionAborted):
            store.run_transaction(txn)
        assert len(attempts) == 3
        assert store.get("clients", client_id)["notes"] == "3"

    def test_per_call_max_attempts(self, memory_store):
        client_id = _add_client(memory_store)
        attempts = []

        def txn(tx):
            tx.get("clients", client_id)
            attempts.append(1)
            memory_store.run_transaction(
                lambda inner: inner.update("clients", client_id, {"notes": "x"})
            )
            tx.update("clients", client_id, {"notes": "mine"})

        with pytest.raises(TransactionAborted):
            memory_store.run_transaction(txn, max_attempts=2)
        assert len(attempts) == 2


class TestStoreSelection:

    def test_build_store(self):
        assert isinstance(build_store("memory", 3), MemoryDocumentStore)
        assert isinstance(build_store("sql", 3), SqlDocumentStore)
        assert build_store("memory", 3).max_attempts == 3

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_store("redis", 3)

    def test_testing_app_uses_sql_store(self, app):
        assert isinstance(get_store(), SqlDocumentStore)
        assert get_store().max_attempts == app.config["TRANSACTION_MAX_ATTEMPTS"]
