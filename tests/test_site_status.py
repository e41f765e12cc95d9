"""Tests for the public edge lookup — GET /api/site-status."""

from sitedesk.services import site_service
from sitedesk.store import get_store


def _site(seed_data, **data):
    return site_service.create_site(
        get_store(), {"client_id": seed_data["acme_id"], **data}
    )


class TestSiteStatus:

    def test_domain_required(self, client):
        resp = client.get("/api/site-status")
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Domain required"}

    def test_unknown_domain(self, client, seed_data):
        resp = client.get("/api/site-status?domain=nope.com")
        assert resp.status_code == 404
        assert resp.get_json() == {"status": "not_found"}

    def test_found_active(self, client, seed_data):
        _site(seed_data, type="managed", domain="foo.com", status="live")

        resp = client.get("/api/site-status?domain=www.foo.com")

        assert resp.status_code == 200
        assert resp.get_json() == {"status": "found", "service_status": "active"}

    def test_found_suspended(self, client, seed_data):
        site_id = _site(seed_data, type="external", external_url="https://foo.com")
        site_service.update_site(get_store(), site_id, {"service_status": "suspended"})

        resp = client.get("/api/site-status?domain=https://FOO.com/")

        assert resp.get_json()["service_status"] == "suspended"

    def test_no_login_needed(self, client, seed_data):
        _site(seed_data, type="managed", domain="foo.com")
        assert client.get("/api/site-status?domain=foo.com").status_code == 200
