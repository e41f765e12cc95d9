"""SQL document store on top of Flask-SQLAlchemy.

Each collection maps to a model (sites, clients, domain_claims). Every row
carries a `version` token that is rewritten on each write; a transaction
remembers the tokens it read and re-checks them inside the commit's database
transaction (SELECT ... FOR UPDATE on backends that support it) before
applying its writes. A concurrent insert of the same primary key surfaces as
an IntegrityError and is treated as a conflict too.

Must be used inside an application context.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from sitedesk.extensions import db
from sitedesk.store.base import (
    DEFAULT_MAX_ATTEMPTS,
    DocumentNotFoundError,
    DocumentStore,
    Transaction,
    TransactionConflict,
    check_collection,
    new_version,
)
from sitedesk.store.schema import (
    MANAGED_COLUMNS,
    MODELS,
    column_default,
    columns,
    document_fields,
)

logger = logging.getLogger(__name__)


def row_to_doc(row):
    """Model instance -> document dict (without the version token)."""
    return {
        key: getattr(row, key)
        for key in document_fields(row.__tablename__)
    }


def _apply(row, data, replace):
    model = type(row)
    key_field = check_collection(model.__tablename__)
    for key in columns(model):
        if key in MANAGED_COLUMNS or key == key_field:
            continue
        if key in data:
            setattr(row, key, data[key])
        elif replace:
            setattr(row, key, column_default(model, key))
    row.version = new_version()


class SqlTransaction(Transaction):

    def __init__(self, store):
        super().__init__()
        self._session = store.session

    def _read(self, collection, key):
        row = self._session.get(MODELS[collection], key, populate_existing=True)
        if row is None:
            return None, None
        return row.version, row_to_doc(row)

    def _commit(self):
        session = self._session
        try:
            for (collection, key), seen in self._read_set.items():
                row = session.get(
                    MODELS[collection],
                    key,
                    populate_existing=True,
                    with_for_update=True,
                )
                current = row.version if row is not None else None
                if current != seen:
                    raise TransactionConflict(
                        f"{collection}/{key} changed since it was read"
                    )

            for (collection, key), (op, data) in self._writes.items():
                model = MODELS[collection]
                row = session.get(model, key)
                if op == "delete":
                    if row is not None:
                        session.delete(row)
                elif op == "set":
                    if row is None:
                        row = model(**{check_collection(collection): key})
                        session.add(row)
                    _apply(row, data, replace=True)
                else:
                    if row is None:
                        raise DocumentNotFoundError(
                            f"{collection}/{key} does not exist"
                        )
                    _apply(row, data, replace=False)

            session.commit()
        except (IntegrityError, StaleDataError) as e:
            session.rollback()
            raise TransactionConflict(str(e)) from e
        except Exception:
            session.rollback()
            raise

    def _rollback(self):
        self._session.rollback()


class SqlDocumentStore(DocumentStore):

    def __init__(self, session=None, max_attempts=DEFAULT_MAX_ATTEMPTS):
        super().__init__(max_attempts)
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _begin(self):
        return SqlTransaction(self)

    def get(self, collection, key):
        check_collection(collection)
        row = self.session.get(MODELS[collection], key, populate_existing=True)
        return row_to_doc(row) if row is not None else None

    def query(self, collection, field, value):
        check_collection(collection)
        model = MODELS[collection]
        if field not in columns(model):
            return []
        stmt = select(model).where(getattr(model, field) == value)
        rows = self.session.execute(
            stmt, execution_options={"populate_existing": True}
        ).scalars().all()
        return [row_to_doc(row) for row in rows]

    def list(self, collection):
        check_collection(collection)
        stmt = select(MODELS[collection])
        rows = self.session.execute(
            stmt, execution_options={"populate_existing": True}
        ).scalars().all()
        return [row_to_doc(row) for row in rows]
