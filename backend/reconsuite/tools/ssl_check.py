"""
TLS inspection built-in.

Performs one TLS handshake against ``host[:port]`` (default port 443) with
certificate verification disabled, so that expired or self-signed
certificates can still be inspected, and reports the negotiated protocol,
the cipher, and the leaf certificate's names and validity window.  The
certificate is decoded with ``cryptography``.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Mapping

from cryptography import x509
from cryptography.x509.oid import NameOID

from reconsuite.engine.parsers import Finding
from reconsuite.tools.base import BuiltinTool, ProbeError, ToolCategory
from reconsuite.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

_DEFAULT_PORT: int = 443
_CONNECT_TIMEOUT: float = 10.0

_PROTOCOL_NAMES: dict[str, str] = {
    "TLSv1": "TLS 1.0",
    "TLSv1.1": "TLS 1.1",
    "TLSv1.2": "TLS 1.2",
    "TLSv1.3": "TLS 1.3",
}


def split_host_port(target: str) -> tuple[str, int]:
    """Split ``host[:port]``; bare IPv6 literals keep the default port.

    Raises:
        ProbeError: If the port is not a number in 1-65535.
    """
    target = target.strip()
    host, port_text = target, ""
    if target.startswith("["):
        host, _, rest = target[1:].partition("]")
        port_text = rest[1:] if rest.startswith(":") else ""
    elif target.count(":") == 1:
        host, _, port_text = target.partition(":")

    if not port_text:
        return host, _DEFAULT_PORT
    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        raise ProbeError(f"invalid port: {port_text}")
    return host, int(port_text)


def _common_name(name: x509.Name) -> str:
    attributes = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attributes[0].value) if attributes else ""


def describe_certificate(der_bytes: bytes) -> list[Finding]:
    """Turn a DER-encoded leaf certificate into ``ssl`` findings."""
    cert = x509.load_der_x509_certificate(der_bytes)
    try:
        san_ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        sans = san_ext.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        sans = []

    return [
        Finding("ssl", "subject", _common_name(cert.subject)),
        Finding("ssl", "issuer", _common_name(cert.issuer)),
        Finding("ssl", "not_before", cert.not_valid_before_utc.isoformat()),
        Finding("ssl", "not_after", cert.not_valid_after_utc.isoformat()),
        Finding("ssl", "san", ", ".join(sans)),
    ]


@ToolRegistry.register
class SSLCheckTool(BuiltinTool):
    """TLS protocol, cipher, and certificate details of a single endpoint."""

    name = "ssl_check"
    label = "SSL/TLS Check"
    category = ToolCategory.ACTIVE
    timeout = 30.0

    async def probe(self, target: str, parameters: Mapping[str, object]) -> list[Finding]:
        host, port = split_host_port(target)

        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE

        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, ssl=ctx, server_hostname=host),
                timeout=_CONNECT_TIMEOUT,
            )
        except (asyncio.TimeoutError, OSError) as exc:
            raise ProbeError(f"TLS connection failed: {str(exc) or type(exc).__name__}") from exc

        try:
            ssl_object = writer.get_extra_info("ssl_object")
            if ssl_object is None:
                raise ProbeError("TLS connection failed: no TLS session")

            version = ssl_object.version() or ""
            cipher = ssl_object.cipher()
            findings = [
                Finding("ssl", "tls_version", _PROTOCOL_NAMES.get(version, f"Unknown ({version})")),
                Finding("ssl", "cipher_suite", cipher[0] if cipher else ""),
            ]

            der_bytes = ssl_object.getpeercert(binary_form=True)
            if der_bytes:
                findings.extend(describe_certificate(der_bytes))
            else:
                logger.info(
                    "Server presented no certificate",
                    extra={"action": "ssl_check", "target": f"{host}:{port}"},
                )
            return findings
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                logger.debug("TLS close failed for %s:%d", host, port, exc_info=True)
