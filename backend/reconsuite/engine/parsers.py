"""
Tool output parsers.

Pure functions turning the captured stdout of a finished tool into an
ordered list of :class:`Finding` objects.  Tool output is untrusted, so
every parser tolerates empty, truncated, or garbage input; the dispatcher
:func:`parse_output` additionally converts any unexpected parser exception
into "no findings" so that parsing can never fail a scan.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Finding:
    """One structured fact extracted from a scan.

    Attributes:
        result_type: Finding family (``whois``, ``dns``, ``port`` ...).
        key: Key within the family.
        value: Extracted value.
        details: Optional structured extras, stored as JSON.
    """

    result_type: str
    key: str
    value: str
    details: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# whois
# ---------------------------------------------------------------------------

_WHOIS_FIELDS: tuple[tuple[str, str], ...] = (
    ("Registrar:", "registrar"),
    ("Registrant Organization:", "registrant_org"),
    ("Creation Date:", "creation_date"),
    ("Updated Date:", "updated_date"),
    ("Registry Expiry Date:", "expiry_date"),
    ("Name Server:", "nameserver"),
    ("Registrant Country:", "registrant_country"),
    ("Registrant State/Province:", "registrant_state"),
    ("DNSSEC:", "dnssec"),
)


def parse_whois(raw: str) -> list[Finding]:
    """Extract well-known registration fields from whois text."""
    findings: list[Finding] = []
    for line in raw.splitlines():
        line = line.strip()
        for prefix, key in _WHOIS_FIELDS:
            if line.startswith(prefix):
                value = line[len(prefix):].strip()
                if value:
                    findings.append(Finding("whois", key, value))
                break
    return findings


# ---------------------------------------------------------------------------
# dig
# ---------------------------------------------------------------------------

_DIG_MIN_FIELDS: int = 5


def parse_dig(raw: str) -> list[Finding]:
    """Parse ``dig +noall +answer +authority`` records.

    Each record line is ``name ttl class type value...``; comment lines and
    lines with fewer than five fields are skipped.
    """
    findings: list[Finding] = []
    for line in raw.splitlines():
        line = line.strip()
        if not line or line.startswith(";"):
            continue
        fields = line.split()
        if len(fields) < _DIG_MIN_FIELDS:
            continue
        findings.append(
            Finding(
                result_type="dns",
                key=fields[3],
                value=" ".join(fields[4:]),
                details={"name": fields[0], "ttl": fields[1], "class": fields[2]},
            )
        )
    return findings


# ---------------------------------------------------------------------------
# nmap (-oX -)
# ---------------------------------------------------------------------------

class NmapService(BaseModel):
    name: str = ""
    product: str = ""
    version: str = ""

    def describe(self) -> str:
        if not self.product:
            return self.name
        product = f"{self.product} {self.version}".strip()
        return f"{self.name} ({product})"


class NmapPort(BaseModel):
    portid: str
    protocol: str = "tcp"
    state: str = "unknown"
    reason: str = ""
    service: Optional[NmapService] = None


class NmapOsMatch(BaseModel):
    name: str
    accuracy: str = ""


class NmapHost(BaseModel):
    address: str = ""
    ports: list[NmapPort] = Field(default_factory=list)
    os_matches: list[NmapOsMatch] = Field(default_factory=list)


class NmapRun(BaseModel):
    hosts: list[NmapHost] = Field(default_factory=list)

    @classmethod
    def from_xml(cls, xml_text: str) -> "NmapRun":
        """Parse nmap XML output; a root other than ``<nmaprun>`` gives an empty run.

        Raises:
            xml.etree.ElementTree.ParseError: If *xml_text* is not XML.
        """
        root = ET.fromstring(xml_text)
        if root.tag != "nmaprun":
            return cls()
        hosts: list[NmapHost] = []

        for host_el in root.iter("host"):
            address = ""
            for addr_el in host_el.findall("address"):
                if addr_el.get("addrtype") in ("ipv4", "ipv6"):
                    address = addr_el.get("addr", "")
                    break

            ports: list[NmapPort] = []
            for port_el in host_el.findall("ports/port"):
                state_el = port_el.find("state")
                service_el = port_el.find("service")
                ports.append(
                    NmapPort(
                        portid=port_el.get("portid", ""),
                        protocol=port_el.get("protocol", "tcp"),
                        state=state_el.get("state", "unknown") if state_el is not None else "unknown",
                        reason=state_el.get("reason", "") if state_el is not None else "",
                        service=NmapService(
                            name=service_el.get("name", ""),
                            product=service_el.get("product", ""),
                            version=service_el.get("version", ""),
                        ) if service_el is not None else None,
                    )
                )

            os_matches = [
                NmapOsMatch(name=match.get("name", ""), accuracy=match.get("accuracy", ""))
                for match in host_el.findall("os/osmatch")
            ]
            hosts.append(NmapHost(address=address, ports=ports, os_matches=os_matches))

        return cls(hosts=hosts)


def parse_nmap_xml(raw: str) -> list[Finding]:
    """Convert nmap XML into ``port`` and ``os`` findings.

    Unparsable XML yields no findings.
    """
    if not raw.strip():
        return []
    try:
        run = NmapRun.from_xml(raw)
    except ET.ParseError as exc:
        logger.warning("Unparsable nmap XML: %s", exc, extra={"action": "parse", "target": "nmap"})
        return []

    findings: list[Finding] = []
    for host in run.hosts:
        for port in host.ports:
            findings.append(
                Finding(
                    result_type="port",
                    key=f"{port.portid}/{port.protocol}",
                    value=port.state,
                    details={
                        "host": host.address,
                        "service": port.service.describe() if port.service else "",
                        "reason": port.reason,
                    },
                )
            )
        for match in host.os_matches:
            findings.append(
                Finding(
                    result_type="os",
                    key="os_match",
                    value=match.name,
                    details={"accuracy": match.accuracy, "host": host.address},
                )
            )
    return findings


# ---------------------------------------------------------------------------
# curl -I
# ---------------------------------------------------------------------------

def parse_http_headers(raw: str) -> list[Finding]:
    """Split ``curl -I`` output into status and header findings.

    Every ``HTTP/`` status line (one per redirect hop) becomes a ``status``
    finding; every ``Name: Value`` line becomes a finding keyed by the name.
    """
    findings: list[Finding] = []
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        if line.startswith("HTTP/"):
            parts = line.split(" ", 2)
            if len(parts) >= 2:
                findings.append(Finding("header", "status", " ".join(parts[1:])))
            continue
        name, sep, value = line.partition(":")
        if sep:
            findings.append(Finding("header", name.strip(), value.strip()))
    return findings


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

PARSERS: dict[str, Callable[[str], list[Finding]]] = {
    "whois": parse_whois,
    "dig": parse_dig,
    "nmap": parse_nmap_xml,
    "curl": parse_http_headers,
}


def parse_output(parser_key: str, stdout: str) -> list[Finding]:
    """Parse *stdout* with the parser registered under *parser_key*.

    Tools without a dedicated parser get their whole stdout stored as a
    single ``raw`` finding.  Parser exceptions are logged and produce an
    empty list.

    Args:
        parser_key: Usually the tool name.
        stdout: Captured standard output.

    Returns:
        Findings in source order.
    """
    parser = PARSERS.get(parser_key)
    if parser is None:
        return [Finding("raw", parser_key, stdout)] if stdout else []

    try:
        return parser(stdout)
    except Exception:  # noqa: BLE001
        logger.exception(
            "Parser failed; storing no structured results",
            extra={"action": "parse", "target": parser_key},
        )
        return []
