"""
External command-line tools.

Each class turns a validated target plus the scan's string parameters into
the argument vector of one executable.  Option values that end up on the
command line are passed through :func:`sanitize_arg`; no shell is ever
involved, so this only keeps odd values from turning into odd options.
"""

from __future__ import annotations

from typing import Mapping

from reconsuite.config import get_settings
from reconsuite.core.security import sanitize_arg
from reconsuite.tools.base import ExternalTool, ToolCategory, ToolSpecError
from reconsuite.tools.registry import ToolRegistry

_MINUTE: float = 60.0

_DIG_RECORD_TYPES: frozenset[str] = frozenset(
    {"A", "AAAA", "MX", "NS", "TXT", "SOA", "CNAME", "PTR", "ANY"}
)

_NMAP_MODE_FLAGS: dict[str, str] = {
    "service": "-sV",
    "os": "-O",
    "ping": "-sn",
    "banner": "--script=banner",
}
_NMAP_DEFAULT_FLAG: str = "-sT"


# ── Passive ──────────────────────────────────────────────────────────────────

@ToolRegistry.register
class WhoisTool(ExternalTool):
    """Domain/IP registration lookup."""

    name = "whois"
    label = "WHOIS"
    category = ToolCategory.PASSIVE
    binary = "whois"
    timeout = 30.0
    version_arg = ""

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        return [target]


@ToolRegistry.register
class DigTool(ExternalTool):
    """DNS record query; ``record_type`` selects the record (default ``ANY``)."""

    name = "dig"
    label = "dig"
    category = ToolCategory.PASSIVE
    binary = "dig"
    timeout = 30.0
    version_arg = "-v"

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        record_type = self.param(parameters, "record_type", "ANY").upper()
        if record_type not in _DIG_RECORD_TYPES:
            raise ToolSpecError(f"invalid record type: {record_type}")
        return [target, record_type, "+noall", "+answer", "+authority"]


@ToolRegistry.register
class TheHarvesterTool(ExternalTool):
    """Email/host harvesting from public sources."""

    name = "theharvester"
    label = "theHarvester"
    category = ToolCategory.PASSIVE
    binary = "theHarvester"
    timeout = 5 * _MINUTE
    version_arg = "--help"

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        sources = sanitize_arg(self.param(parameters, "sources", "bing,crtsh,dnsdumpster"))
        return ["-d", target, "-b", sources]


@ToolRegistry.register
class DnsReconTool(ExternalTool):
    """DNS enumeration; ``scan_mode`` is ``standard``, ``reverse`` or ``axfr``."""

    name = "dnsrecon"
    label = "DNSRecon"
    category = ToolCategory.PASSIVE
    binary = "dnsrecon"
    timeout = 5 * _MINUTE
    version_arg = "--help"

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        mode = self.param(parameters, "scan_mode")
        if mode == "reverse":
            return ["-r", target]
        if mode == "axfr":
            return ["-d", target, "-t", "axfr"]
        return ["-d", target]


# ── Active ───────────────────────────────────────────────────────────────────

@ToolRegistry.register
class NmapTool(ExternalTool):
    """Port scan with XML output on stdout.

    ``scan_type`` picks the probe (``service``, ``os``, ``ping``, ``banner``,
    anything else is a TCP connect scan); ``ports`` restricts the port list.
    """

    name = "nmap"
    label = "Nmap"
    category = ToolCategory.ACTIVE
    binary = "nmap"
    timeout = 30 * _MINUTE

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        mode = self.param(parameters, "scan_type")
        args = ["-T4", _NMAP_MODE_FLAGS.get(mode, _NMAP_DEFAULT_FLAG)]
        ports = sanitize_arg(self.param(parameters, "ports"))
        if ports:
            args += ["-p", ports]
        args += ["-oX", "-", target]
        return args


@ToolRegistry.register
class TracerouteTool(ExternalTool):
    """Network path discovery."""

    name = "traceroute"
    label = "Traceroute"
    category = ToolCategory.ACTIVE
    binary = "traceroute"
    timeout = 2 * _MINUTE

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        return [target]


@ToolRegistry.register
class SnmpWalkTool(ExternalTool):
    """SNMP v2c walk of ``oid`` using ``community``."""

    name = "snmpwalk"
    label = "SNMPWalk"
    category = ToolCategory.ACTIVE
    binary = "snmpwalk"
    timeout = 2 * _MINUTE
    version_arg = "-V"

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        community = sanitize_arg(self.param(parameters, "community", "public"))
        oid = sanitize_arg(self.param(parameters, "oid", "1.3.6.1.2.1"))
        return ["-v2c", "-c", community, target, oid]


@ToolRegistry.register
class NetcatTool(ExternalTool):
    """Banner grab on a single ``port`` (required)."""

    name = "netcat"
    label = "Netcat"
    category = ToolCategory.ACTIVE
    binary = "nc"
    timeout = 30.0
    version_arg = "-h"

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        port = sanitize_arg(self.param(parameters, "port"))
        if not port:
            raise ToolSpecError("port is required for banner grab")
        return ["-w", "5", "-v", target, port]


# ── Web ──────────────────────────────────────────────────────────────────────

@ToolRegistry.register
class CurlTool(ExternalTool):
    """Response headers of a URL, following redirects."""

    name = "curl"
    label = "curl"
    category = ToolCategory.WEB
    binary = "curl"
    timeout = 30.0
    target_kind = "url"

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        return ["-I", "-s", "-L", "--max-time", "15", target]


@ToolRegistry.register
class WhatWebTool(ExternalTool):
    """Web technology fingerprinting at ``aggression`` level (default 1)."""

    name = "whatweb"
    label = "WhatWeb"
    category = ToolCategory.WEB
    binary = "whatweb"
    timeout = 2 * _MINUTE
    target_kind = "url"

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        aggression = sanitize_arg(self.param(parameters, "aggression", "1"))
        return ["-a", aggression, "--color=never", target]


@ToolRegistry.register
class GobusterTool(ExternalTool):
    """Directory brute force with ``wordlist`` and optional ``extensions``."""

    name = "gobuster"
    label = "Gobuster"
    category = ToolCategory.WEB
    binary = "gobuster"
    timeout = 15 * _MINUTE
    target_kind = "url"
    version_arg = "version"

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        wordlist = self.param(parameters, "wordlist", get_settings().DEFAULT_WORDLIST)
        args = ["dir", "-u", target, "-w", sanitize_arg(wordlist), "-t", "10", "--no-color", "-q"]
        extensions = sanitize_arg(self.param(parameters, "extensions"))
        if extensions:
            args += ["-x", extensions]
        return args
