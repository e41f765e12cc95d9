"""Tests for the auth blueprint — session login for the admin API."""

from sitedesk.extensions import db
from sitedesk.models.user import User


class TestLogin:

    def test_login_success(self, client, seed_data):
        resp = client.post(
            "/auth/login",
            json={"email": "Admin@SiteDesk.local ", "password": "admin123"},
        )
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["ok"] is True
        assert data["user"]["is_admin"] is True

    def test_login_form_post(self, client, seed_data):
        resp = client.post(
            "/auth/login",
            data={"email": "admin@sitedesk.local", "password": "admin123"},
        )
        assert resp.status_code == 200

    def test_wrong_password(self, client, seed_data):
        resp = client.post(
            "/auth/login",
            json={"email": "admin@sitedesk.local", "password": "nope"},
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid email or password."

    def test_unknown_email_same_message(self, client, seed_data):
        resp = client.post(
            "/auth/login",
            json={"email": "ghost@sitedesk.local", "password": "admin123"},
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid email or password."

    def test_missing_fields(self, client, seed_data):
        resp = client.post("/auth/login", json={"email": "admin@sitedesk.local"})
        assert resp.status_code == 400

    def test_login_records_timestamp(self, client, seed_data):
        client.post(
            "/auth/login",
            json={"email": "admin@sitedesk.local", "password": "admin123"},
        )
        assert db.session.get(User, seed_data["admin_id"]).last_login_at is not None

    def test_deactivated_user(self, client, seed_data):
        user = db.session.get(User, seed_data["staff_id"])
        user.is_active = False
        db.session.commit()

        resp = client.post(
            "/auth/login",
            json={"email": "staff@sitedesk.local", "password": "staff123"},
        )
        assert resp.status_code == 403


class TestSession:

    def test_me_requires_login(self, client, seed_data):
        assert client.get("/auth/me").status_code == 401

    def test_me_and_logout(self, client, seed_data):
        client.post(
            "/auth/login",
            json={"email": "admin@sitedesk.local", "password": "admin123"},
        )
        resp = client.get("/auth/me")
        assert resp.get_json()["user"]["email"] == "admin@sitedesk.local"

        assert client.post("/auth/logout").status_code == 200
        assert client.get("/auth/me").status_code == 401

    def test_csrf_token(self, client):
        resp = client.get("/auth/csrf-token")
        assert resp.status_code == 200
        assert resp.get_json()["csrf_token"]
