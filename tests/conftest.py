"""Shared test fixtures for the SiteDesk test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- store: the site store, once per backend (memory + sql)
- memory_store: in-memory store only (concurrency tests)
- seed_data: admin user, non-admin user and two clients
"""

import pytest

from sitedesk import create_app
from sitedesk.extensions import db as _db
from sitedesk.models.user import User
from sitedesk.services import client_service
from sitedesk.store import get_store
from sitedesk.store.memory import MemoryDocumentStore
from sitedesk.store.sql import SqlDocumentStore


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture(params=["memory", "sql"])
def store(request, db_session):
    """Each service test runs against both store backends."""
    if request.param == "memory":
        return MemoryDocumentStore()
    return SqlDocumentStore()


@pytest.fixture
def memory_store():
    return MemoryDocumentStore()


@pytest.fixture
def clients(store):
    """Two clients in the parametrized store. Returns their ids."""
    return {
        "acme": client_service.create_client(
            store, {"full_name": "Acme Plumbing", "status": "active"}
        ),
        "bakery": client_service.create_client(
            store, {"full_name": "Corner Bakery", "status": "active"}
        ),
    }


@pytest.fixture
def seed_data(app, db_session):
    """Seed an admin user, a non-admin user and two clients in the app store.

    Returns plain ids so tests can use them across app contexts.
    """
    admin = User(email="admin@sitedesk.local", full_name="Admin User", is_admin=True)
    admin.set_password("admin123")
    staff = User(email="staff@sitedesk.local", full_name="Staff User", is_admin=False)
    staff.set_password("staff123")
    _db.session.add_all([admin, staff])
    _db.session.commit()

    store = get_store()
    acme_id = client_service.create_client(
        store, {"full_name": "Acme Plumbing", "status": "active"}
    )
    bakery_id = client_service.create_client(
        store, {"full_name": "Corner Bakery", "status": "active"}
    )

    return {
        "admin_id": admin.id,
        "staff_id": staff.id,
        "acme_id": acme_id,
        "bakery_id": bakery_id,
    }

