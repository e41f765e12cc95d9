"""Tests for domain normalization and effective domain resolution."""

import pytest

from sitedesk.services.domain_service import (
    domain_field,
    effective_domain,
    ensure_protocol,
    normalize_domain,
)


class TestNormalizeDomain:

    @pytest.mark.parametrize("value", [
        "https://Example.com/",
        "example.com",
        "WWW.example.com/",
        "http://www.example.com",
        "  https://example.com//  ",
        "https://https://example.com",
        "HTTP://WWW.EXAMPLE.COM/",
    ])
    def test_cosmetic_variants_collapse(self, value):
        assert normalize_domain(value) == "example.com"

    @pytest.mark.parametrize("value", [None, "", "   ", "https://", "http:///", "www."])
    def test_empty_after_normalization_is_none(self, value):
        assert normalize_domain(value) is None

    @pytest.mark.parametrize("value", [
        "https://Example.com/",
        "www.www.example.com",
        "https:// www.example.com",
        "http://https://www.example.com/path/",
        "shop.example.com",
        "example.com/",
    ])
    def test_idempotent(self, value):
        once = normalize_domain(value)
        assert normalize_domain(once) == once

    def test_keeps_path_and_subdomain(self):
        assert normalize_domain("https://shop.example.com/menu/") == "shop.example.com/menu"

    def test_ftp_is_not_a_stripped_protocol(self):
        assert normalize_domain("ftp://example.com") == "ftp://example.com"


class TestEnsureProtocol:

    def test_adds_https(self):
        assert ensure_protocol("example.com") == "https://example.com"

    def test_keeps_existing_protocol(self):
        assert ensure_protocol("http://example.com") == "http://example.com"
        assert ensure_protocol("https://example.com") == "https://example.com"

    def test_empty(self):
        assert ensure_protocol(None) is None
        assert ensure_protocol("  ") is None


class TestEffectiveDomain:

    def test_managed_uses_domain(self):
        site = {"type": "managed", "domain": "WWW.Foo.com", "external_url": "bar.com"}
        assert effective_domain(site) == "foo.com"

    def test_external_uses_external_url(self):
        site = {"type": "external", "domain": "foo.com", "external_url": "https://Bar.com/"}
        assert effective_domain(site) == "bar.com"

    def test_unknown_or_missing_type(self):
        assert effective_domain({"domain": "foo.com"}) is None
        assert effective_domain({"type": "other", "domain": "foo.com"}) is None

    def test_missing_field(self):
        assert effective_domain({"type": "managed"}) is None
        assert effective_domain({"type": "external", "external_url": ""}) is None

    def test_domain_field(self):
        assert domain_field("managed") == "domain"
        assert domain_field("external") == "external_url"
        assert domain_field(None) is None
