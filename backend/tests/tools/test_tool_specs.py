"""
Tests for the external tool definitions.

Each tool's ``build_spec`` is checked for the exact argument vector it
produces, for target validation, and for parameter handling.
"""

from __future__ import annotations

import pytest

from reconsuite.config import get_settings
from reconsuite.tools.base import ExternalTool, ToolSpecError
from reconsuite.tools.registry import ToolRegistry


def _tool(name: str) -> ExternalTool:
    tool = ToolRegistry.get(name)
    assert isinstance(tool, ExternalTool)
    return tool


@pytest.mark.parametrize(
    ("name", "target", "parameters", "binary", "args"),
    [
        ("whois", "example.com", {}, "whois", ["example.com"]),
        ("dig", "example.com", {}, "dig", ["example.com", "ANY", "+noall", "+answer", "+authority"]),
        ("dig", "example.com", {"record_type": "mx"}, "dig",
         ["example.com", "MX", "+noall", "+answer", "+authority"]),
        ("theharvester", "example.com", {}, "theHarvester",
         ["-d", "example.com", "-b", "bing,crtsh,dnsdumpster"]),
        ("dnsrecon", "example.com", {}, "dnsrecon", ["-d", "example.com"]),
        ("dnsrecon", "10.0.0.0/24", {"scan_mode": "reverse"}, "dnsrecon", ["-r", "10.0.0.0/24"]),
        ("dnsrecon", "example.com", {"scan_mode": "axfr"}, "dnsrecon",
         ["-d", "example.com", "-t", "axfr"]),
        ("nmap", "192.168.1.10", {}, "nmap", ["-T4", "-sT", "-oX", "-", "192.168.1.10"]),
        ("nmap", "192.168.1.10", {"scan_type": "service", "ports": "22,80,443"}, "nmap",
         ["-T4", "-sV", "-p", "22,80,443", "-oX", "-", "192.168.1.10"]),
        ("nmap", "scanme.example", {"scan_type": "banner"}, "nmap",
         ["-T4", "--script=banner", "-oX", "-", "scanme.example"]),
        ("traceroute", "example.com", {}, "traceroute", ["example.com"]),
        ("snmpwalk", "10.0.0.1", {}, "snmpwalk", ["-v2c", "-c", "public", "10.0.0.1", "1.3.6.1.2.1"]),
        ("netcat", "10.0.0.1", {"port": "22"}, "nc", ["-w", "5", "-v", "10.0.0.1", "22"]),
        ("curl", "https://example.com", {}, "curl",
         ["-I", "-s", "-L", "--max-time", "15", "https://example.com"]),
        ("whatweb", "http://example.com", {"aggression": "3"}, "whatweb",
         ["-a", "3", "--color=never", "http://example.com"]),
    ],
)
def test_build_spec_arguments(
    name: str, target: str, parameters: dict[str, str], binary: str, args: list[str],
) -> None:
    spec = _tool(name).build_spec(target, parameters)

    assert spec.name == name
    assert spec.binary == binary
    assert list(spec.args) == args
    assert spec.timeout == _tool(name).timeout


def test_gobuster_defaults_to_configured_wordlist() -> None:
    spec = _tool("gobuster").build_spec("https://example.com", {})

    assert list(spec.args) == [
        "dir", "-u", "https://example.com",
        "-w", get_settings().DEFAULT_WORDLIST,
        "-t", "10", "--no-color", "-q",
    ]


def test_gobuster_wordlist_and_extensions() -> None:
    spec = _tool("gobuster").build_spec(
        "https://example.com", {"wordlist": "/tmp/words.txt", "extensions": "php,html"}
    )

    assert spec.args[4] == "/tmp/words.txt"
    assert list(spec.args[-2:]) == ["-x", "php,html"]


def test_netcat_requires_port() -> None:
    with pytest.raises(ToolSpecError, match="port is required"):
        _tool("netcat").build_spec("10.0.0.1", {})


def test_dig_rejects_unknown_record_type() -> None:
    with pytest.raises(ToolSpecError, match="invalid record type: BOGUS"):
        _tool("dig").build_spec("example.com", {"record_type": "bogus"})


def test_option_values_are_sanitized() -> None:
    spec = _tool("nmap").build_spec("10.0.0.1", {"ports": "80;reboot"})

    assert "80reboot" in spec.args
    assert not any(";" in arg for arg in spec.args)


@pytest.mark.parametrize(
    ("name", "target"),
    [
        ("whois", ""),
        ("whois", "example.com && id"),
        ("nmap", "10.0.0.0/8"),
        ("dig", "-oX"),
        ("curl", "example.com"),
        ("curl", "ftp://example.com"),
        ("gobuster", "https://example.com/`id`"),
    ],
)
def test_invalid_targets_are_rejected(name: str, target: str) -> None:
    with pytest.raises(ToolSpecError):
        _tool(name).build_spec(target, {})


def test_parser_key_defaults_to_tool_name() -> None:
    assert _tool("dig").parser_key == "dig"
    assert _tool("traceroute").parser_key == "traceroute"
