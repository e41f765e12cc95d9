"""Collection schemas, taken from the SQLAlchemy models.

Both backends return documents with the same field set: every model column
except the version token, with unset fields filled from the column default
(or None).
"""

from sitedesk.models.client import Client
from sitedesk.models.domain_claim import DomainClaim
from sitedesk.models.site import Site

MODELS = {
    "sites": Site,
    "clients": Client,
    "domain_claims": DomainClaim,
}

# Columns the store owns; callers never write them.
MANAGED_COLUMNS = ("version", "created_at", "updated_at")


def columns(model):
    return [c.key for c in model.__table__.columns]


def column_default(model, key):
    """Scalar column default, None for callables and server defaults."""
    column = model.__table__.columns[key]
    default = column.default.arg if column.default is not None else None
    return None if callable(default) else default


def document_fields(collection):
    """Field names a document of this collection carries."""
    return [key for key in columns(MODELS[collection]) if key != "version"]


def blank_document(collection):
    """Every writable field at its default."""
    model = MODELS[collection]
    return {
        key: column_default(model, key)
        for key in columns(model)
        if key not in MANAGED_COLUMNS
    }
