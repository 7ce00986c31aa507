"""
Tests for the built-in probes.

HTTP probes run against :class:`httpx.MockTransport`; the TLS probe's
certificate decoding uses a self-signed certificate generated with
``cryptography``, and its connection failures are simulated by patching
``asyncio.open_connection``.
"""

from __future__ import annotations

import datetime
from unittest.mock import patch

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from reconsuite.tools.base import ProbeError
from reconsuite.tools.osint import GoogleDorkingTool, OsintAggregatorTool
from reconsuite.tools.ssl_check import SSLCheckTool, describe_certificate, split_host_port
from reconsuite.tools.web_probes import (
    MetadataExtractTool,
    RobotsSitemapTool,
    disallowed_paths,
    extract_page_metadata,
    normalise_base_url,
)

_ROBOTS = "User-agent: *\nDisallow: /admin\nDisallow:\nDisallow: /private/\nAllow: /\n"
_SITEMAP = '<?xml version="1.0"?><urlset><url><loc>https://example.com/</loc></url></urlset>'
_PAGE = """
<html>
  <head>
    <title> Example Domain </title>
    <meta name="description" content="An example page">
    <meta property="og:title" content="Example OG">
    <meta name="generator" content="">
    <link rel="canonical" href="https://example.com/">
    <link rel="shortcut icon" href="/favicon.ico">
  </head>
  <body>Hello</body>
</html>
"""


# ---------------------------------------------------------------------------
# robots.txt / sitemap.xml
# ---------------------------------------------------------------------------

def test_normalise_base_url() -> None:
    assert normalise_base_url("example.com") == "https://example.com"
    assert normalise_base_url("http://example.com/") == "http://example.com"
    assert normalise_base_url("  https://example.com//  ") == "https://example.com"


def test_disallowed_paths_skips_empty_rules() -> None:
    assert disallowed_paths(_ROBOTS) == ["/admin", "/private/"]
    assert disallowed_paths("") == []


@pytest.mark.asyncio
async def test_robots_and_sitemap_found() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path == "/robots.txt":
            return httpx.Response(200, text=_ROBOTS)
        return httpx.Response(200, text=_SITEMAP)

    findings = await RobotsSitemapTool(transport=httpx.MockTransport(handler)).probe("example.com", {})

    assert requested == ["/robots.txt", "/sitemap.xml"]
    assert [(f.result_type, f.key) for f in findings] == [
        ("robots", "robots.txt"),
        ("disallowed_path", "/admin"),
        ("disallowed_path", "/private/"),
        ("sitemap", "sitemap.xml"),
    ]
    assert findings[0].value == _ROBOTS
    assert findings[-1].value == _SITEMAP


@pytest.mark.asyncio
async def test_only_sitemap_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/robots.txt":
            return httpx.Response(404)
        return httpx.Response(200, text=_SITEMAP)

    findings = await RobotsSitemapTool(transport=httpx.MockTransport(handler)).probe(
        "https://example.com", {}
    )

    assert [f.result_type for f in findings] == ["sitemap"]


@pytest.mark.asyncio
async def test_neither_found_is_a_probe_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProbeError, match="neither robots.txt nor sitemap.xml found"):
        await RobotsSitemapTool(transport=httpx.MockTransport(handler)).probe("example.com", {})


# ---------------------------------------------------------------------------
# Page metadata
# ---------------------------------------------------------------------------

def test_extract_page_metadata() -> None:
    findings = {f.key: f.value for f in extract_page_metadata(_PAGE)}

    assert findings == {
        "title": "Example Domain",
        "description": "An example page",
        "og:title": "Example OG",
        "canonical": "https://example.com/",
        "favicon": "/favicon.ico",
    }


def test_extract_page_metadata_of_plain_text() -> None:
    assert extract_page_metadata("just text") == []


@pytest.mark.asyncio
async def test_metadata_extract_collects_status_headers_and_html() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"Server": "nginx", "X-Frame-Options": "DENY", "X-Ignored": "1"},
            html=_PAGE,
        )

    findings = await MetadataExtractTool(transport=httpx.MockTransport(handler)).probe(
        "example.com", {}
    )
    values = {f.key: f.value for f in findings}

    assert values["http_status"] == "200 OK"
    assert values["final_url"].startswith("https://example.com")
    assert values["header:server"] == "nginx"
    assert values["header:x-frame-options"] == "DENY"
    assert values["header:content-type"].startswith("text/html")
    assert "header:x-ignored" not in values
    assert values["title"] == "Example Domain"
    assert all(f.result_type == "metadata" for f in findings)


@pytest.mark.asyncio
async def test_metadata_extract_follows_redirects() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/":
            return httpx.Response(301, headers={"Location": "https://example.com/home"})
        return httpx.Response(200, html="<title>Home</title>")

    findings = await MetadataExtractTool(transport=httpx.MockTransport(handler)).probe(
        "https://example.com/", {}
    )
    values = {f.key: f.value for f in findings}

    assert values["final_url"] == "https://example.com/home"
    assert values["title"] == "Home"


@pytest.mark.asyncio
async def test_metadata_extract_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name resolution failed", request=request)

    with pytest.raises(ProbeError, match="fetch URL: name resolution failed"):
        await MetadataExtractTool(transport=httpx.MockTransport(handler)).probe("example.invalid", {})


# ---------------------------------------------------------------------------
# OSINT
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_google_dorking_queries() -> None:
    findings = await GoogleDorkingTool().probe("example.com", {})

    assert len(findings) == 10
    assert findings[0].key == "files"
    assert findings[0].details == {"query": "site:example.com filetype:pdf"}
    assert findings[0].value == "https://www.google.com/search?q=site:example.com+filetype:pdf"
    assert findings[7].details == {"query": "site:*.example.com -www"}


@pytest.mark.asyncio
async def test_osint_links_for_domain_and_ip() -> None:
    domain = await OsintAggregatorTool().probe("example.com", {})
    address = await OsintAggregatorTool().probe("8.8.8.8", {})

    domain_links = {f.key: f.value for f in domain}
    ip_links = {f.key: f.value for f in address}
    assert len(domain) == 7
    assert len(address) == 9
    assert domain_links["Shodan"] == "https://www.shodan.io/search?query=hostname:example.com"
    assert ip_links["Shodan"] == "https://www.shodan.io/host/8.8.8.8"
    assert "AbuseIPDB" in ip_links
    assert "AbuseIPDB" not in domain_links
    assert all(f.result_type == "osint_link" for f in domain + address)


# ---------------------------------------------------------------------------
# TLS
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    ("target", "expected"),
    [
        ("example.com", ("example.com", 443)),
        ("example.com:8443", ("example.com", 8443)),
        ("10.0.0.1:993", ("10.0.0.1", 993)),
        ("[2001:db8::1]:8443", ("2001:db8::1", 8443)),
        ("[2001:db8::1]", ("2001:db8::1", 443)),
        ("2001:db8::1", ("2001:db8::1", 443)),
    ],
)
def test_split_host_port(target: str, expected: tuple[str, int]) -> None:
    assert split_host_port(target) == expected


@pytest.mark.parametrize("target", ["example.com:https", "example.com:0", "example.com:70000"])
def test_split_host_port_rejects_bad_ports(target: str) -> None:
    with pytest.raises(ProbeError, match="invalid port"):
        split_host_port(target)


def _self_signed_der() -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "example.com")])
    issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Example Test CA")])
    not_before = datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + datetime.timedelta(days=90))
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName("example.com"), x509.DNSName("www.example.com")]
            ),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.DER)


def test_describe_certificate() -> None:
    findings = {f.key: f.value for f in describe_certificate(_self_signed_der())}

    assert findings == {
        "subject": "example.com",
        "issuer": "Example Test CA",
        "not_before": "2026-01-01T00:00:00+00:00",
        "not_after": "2026-04-01T00:00:00+00:00",
        "san": "example.com, www.example.com",
    }


@pytest.mark.asyncio
async def test_ssl_check_connection_failure() -> None:
    with patch(
        "reconsuite.tools.ssl_check.asyncio.open_connection",
        side_effect=ConnectionRefusedError(111, "Connection refused"),
    ):
        with pytest.raises(ProbeError, match="TLS connection failed: .*Connection refused"):
            await SSLCheckTool().probe("127.0.0.1:1", {})
