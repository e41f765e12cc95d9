"""Client service — create, fetch and list clients in the site store.

Sites reference clients by id; the lifecycle code only reads a client's
full_name to explain who holds a conflicting domain.
"""

import logging
import re

from sitedesk.models.client import Client

logger = logging.getLogger(__name__)

COLLECTION = "clients"
UNKNOWN_CLIENT = "Unknown Client"

CLIENT_FIELDS = ("full_name", "email", "phone", "status", "notes")


class ClientNotFoundError(LookupError):
    """The referenced client does not exist."""


class InvalidClientError(ValueError):
    """Client input failed validation."""


def normalize_email(email):
    if not email:
        return None
    return email.strip().lower() or None


def normalize_phone(phone):
    """Digits only: "555-0123" -> "5550123"."""
    if not phone:
        return None
    return re.sub(r"\D", "", phone) or None


def _clean(data):
    unknown = set(data) - set(CLIENT_FIELDS)
    if unknown:
        raise InvalidClientError(
            f"Unknown client field(s): {', '.join(sorted(unknown))}"
        )
    for field, value in data.items():
        if value is not None and not isinstance(value, str):
            raise InvalidClientError(f"Field '{field}' must be a string.")

    full_name = (data.get("full_name") or "").strip()
    if not full_name:
        raise InvalidClientError("Name is required.")

    status = data.get("status") or "lead"
    if status not in Client.STATUSES:
        raise InvalidClientError(
            f"Invalid status '{status}'. Must be one of: {', '.join(Client.STATUSES)}"
        )

    email = (data.get("email") or "").strip() or None
    phone = (data.get("phone") or "").strip() or None
    return {
        "full_name": full_name,
        "email": email,
        "email_lower": normalize_email(email),
        "phone": phone,
        "phone_normalized": normalize_phone(phone),
        "status": status,
        "notes": (data.get("notes") or "").strip() or None,
    }


def create_client(store, data):
    """Create a client. Returns the new client id.

    Raises:
        InvalidClientError: missing name, unknown field or bad status.
    """
    doc = _clean(data)
    client_id = store.new_id()

    def txn(tx):
        tx.set(COLLECTION, client_id, doc)
        return client_id

    store.run_transaction(txn)
    logger.info(f"Client created: {client_id} ({doc['full_name']})")
    return client_id


def get_client(store, client_id):
    """Return the client document or raise ClientNotFoundError."""
    client = store.get(COLLECTION, client_id) if client_id else None
    if client is None:
        raise ClientNotFoundError(f"Client {client_id} not found.")
    return client


def list_clients(store, status=None):
    """All clients (optionally one status), alphabetical by name."""
    clients = store.list(COLLECTION)
    if status:
        clients = [c for c in clients if c.get("status") == status]
    return sorted(clients, key=lambda c: (c.get("full_name") or "").lower())


def client_name(tx, client_id):
    """Read a client's display name inside a transaction.

    Missing client or empty name -> "Unknown Client".
    """
    if not client_id:
        return UNKNOWN_CLIENT
    client = tx.get(COLLECTION, client_id)
    if client is None:
        return UNKNOWN_CLIENT
    return client.get("full_name") or UNKNOWN_CLIENT
