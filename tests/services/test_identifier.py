"""Tests for quotaguard.services.identifier."""

import pytest
from fastapi import Request

from quotaguard.config import Settings
from quotaguard.services.identifier import ANONYMOUS, RequestDescriptor, resolve_identifier

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _descriptor(headers=None, query=None, client_host=None) -> RequestDescriptor:
    return RequestDescriptor(
        headers=headers or {},
        query_params=query or {},
        client_host=client_host,
    )


# ---------------------------------------------------------------------------
# RequestDescriptor
# ---------------------------------------------------------------------------


class TestRequestDescriptor:
    def test_header_names_lower_cased(self):
        d = _descriptor(headers={"X-Forwarded-For": "1.2.3.4"})
        assert d.headers == {"x-forwarded-for": "1.2.3.4"}

    def test_from_starlette_request(self):
        scope = {
            "type": "http",
            "method": "GET",
            "path": "/api/chat",
            "query_string": b"domain=Shop.Example.com",
            "headers": [(b"x-real-ip", b"10.0.0.9")],
            "client": ("192.0.2.1", 5555),
        }
        d = RequestDescriptor.from_request(Request(scope))
        assert d.path == "/api/chat"
        assert d.client_host == "192.0.2.1"
        assert d.headers["x-real-ip"] == "10.0.0.9"
        assert d.query_params["domain"] == "Shop.Example.com"

    def test_from_request_without_client(self):
        scope = {"type": "http", "method": "GET", "path": "/", "query_string": b"", "headers": []}
        assert RequestDescriptor.from_request(Request(scope)).client_host is None


# ---------------------------------------------------------------------------
# resolve_identifier
# ---------------------------------------------------------------------------


class TestExplicitKey:
    def test_explicit_key_used_verbatim(self):
        d = _descriptor(headers={"x-forwarded-for": "1.1.1.1"}, client_host="2.2.2.2")
        assert resolve_identifier(d, explicit_key="user:42") == "user:42"

    def test_explicit_key_beats_domain(self):
        d = _descriptor(query={"domain": "a.example.com"})
        assert resolve_identifier(d, prefer_domain=True, explicit_key="k") == "k"


class TestDomainResolution:
    def test_domain_header_normalised(self):
        d1 = _descriptor(headers={"X-Client-Domain": "Test-Shop.Example.com"})
        d2 = _descriptor(headers={"X-Client-Domain": "test-shop.example.com"})
        id1 = resolve_identifier(d1, prefer_domain=True)
        id2 = resolve_identifier(d2, prefer_domain=True)
        assert id1 == id2 == "domain:test-shop.example.com"

    def test_domain_trimmed(self):
        d = _descriptor(query={"domain": "  Shop.Example.com  "})
        assert resolve_identifier(d, prefer_domain=True) == "domain:shop.example.com"

    def test_query_param_preferred_over_header(self):
        d = _descriptor(headers={"x-client-domain": "header.example.com"}, query={"domain": "query.example.com"})
        assert resolve_identifier(d, prefer_domain=True) == "domain:query.example.com"

    def test_domain_ignored_without_prefer_domain(self):
        d = _descriptor(headers={"x-client-domain": "a.example.com"}, client_host="10.0.0.1")
        assert resolve_identifier(d) == "ip:10.0.0.1"

    def test_blank_domain_falls_back_to_address(self):
        d = _descriptor(headers={"x-client-domain": "   "}, client_host="10.0.0.1")
        assert resolve_identifier(d, prefer_domain=True) == "ip:10.0.0.1"

    def test_custom_domain_sources(self):
        settings = Settings(domain_header="X-Shop-Domain", domain_query_param="shop")
        d = _descriptor(headers={"x-shop-domain": "My.Shop"})
        assert resolve_identifier(d, prefer_domain=True, settings=settings) == "domain:my.shop"


class TestAddressResolution:
    def test_first_forwarded_for_entry(self):
        d = _descriptor(headers={"x-forwarded-for": "203.0.113.5, 10.0.0.1, 10.0.0.2"}, client_host="10.0.0.3")
        assert resolve_identifier(d) == "ip:203.0.113.5"

    @pytest.mark.parametrize("header", ["x-real-ip", "cf-connecting-ip"])
    def test_other_forwarding_headers(self, header):
        d = _descriptor(headers={header: "198.51.100.7"}, client_host="10.0.0.3")
        assert resolve_identifier(d) == "ip:198.51.100.7"

    def test_connection_address_when_no_headers(self):
        assert resolve_identifier(_descriptor(client_host="192.0.2.44")) == "ip:192.0.2.44"

    def test_proxy_headers_ignored_when_untrusted(self):
        settings = Settings(trust_proxy_headers=False)
        d = _descriptor(headers={"x-forwarded-for": "203.0.113.5"}, client_host="10.0.0.3")
        assert resolve_identifier(d, settings=settings) == "ip:10.0.0.3"

    def test_empty_forwarded_entry_skipped(self):
        d = _descriptor(headers={"x-forwarded-for": " , 10.0.0.1", "x-real-ip": "198.51.100.1"})
        assert resolve_identifier(d) == "ip:198.51.100.1"


class TestFallback:
    def test_anonymous_when_nothing_identifies_caller(self):
        assert resolve_identifier(_descriptor()) == ANONYMOUS

    def test_anonymous_with_prefer_domain_and_nothing_else(self):
        assert resolve_identifier(_descriptor(), prefer_domain=True) == ANONYMOUS

    def test_never_raises(self, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("quotaguard.services.identifier._source_address", broken)
        assert resolve_identifier(_descriptor(client_host="1.2.3.4")) == ANONYMOUS
