"""
Security utilities: scan target validation and argument sanitization.

Every value that ends up on an external tool's command line passes through
this module first.  Tools are spawned without a shell, so the checks here are
about rejecting targets that are obviously not hosts/URLs and keeping
free-form options free of metacharacters.

Provides:
- ``validate_target`` -- IP, CIDR, or hostname.
- ``validate_url``    -- http(s) URL.
- ``sanitize_arg``    -- strips shell metacharacters from an option value.
"""

from __future__ import annotations

import ipaddress
import re

# ── Constants ────────────────────────────────────────────────────────────────

_HOSTNAME_LABEL: str = r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
_HOSTNAME_REGEX: re.Pattern[str] = re.compile(
    rf"^{_HOSTNAME_LABEL}(?:\.{_HOSTNAME_LABEL})*$"
)
_MAX_HOSTNAME_LENGTH: int = 253

_MIN_IPV4_PREFIX: int = 16
_MIN_IPV6_PREFIX: int = 48

# Shell metacharacters never allowed in targets or option values.
_DANGEROUS_PATTERN: re.Pattern[str] = re.compile(r"[;|&`$(){}\[\]!<>\\\"']")

# Characters that are legal inside a URL and therefore ignored by the
# metacharacter check in ``validate_url``.
_URL_SAFE_CHARS: str = ":/?=&.-_%"


class TargetValidationError(ValueError):
    """Raised when a scan target is not an acceptable host, network, or URL."""


# ── Target Validation ────────────────────────────────────────────────────────

def validate_target(target: str) -> str:
    """Validate a host-style target.

    Accepted forms are a single IPv4/IPv6 address, a CIDR block no wider
    than ``/16`` (IPv4) or ``/48`` (IPv6), or an RFC 1123 hostname.

    Args:
        target: The raw target string supplied by the user.

    Returns:
        The stripped target.

    Raises:
        TargetValidationError: If the target is empty, contains shell
            metacharacters, is an oversized network, or is not a hostname.
    """
    cleaned = (target or "").strip()
    if not cleaned:
        raise TargetValidationError("target cannot be empty")

    if _DANGEROUS_PATTERN.search(cleaned):
        raise TargetValidationError("target contains invalid characters")

    try:
        ipaddress.ip_address(cleaned)
        return cleaned
    except ValueError:
        pass

    if "/" in cleaned:
        try:
            network = ipaddress.ip_network(cleaned, strict=False)
        except ValueError as exc:
            raise TargetValidationError(f"invalid network: {cleaned}") from exc
        minimum = _MIN_IPV4_PREFIX if network.version == 4 else _MIN_IPV6_PREFIX
        if network.prefixlen < minimum:
            family = "CIDR" if network.version == 4 else "IPv6 CIDR"
            raise TargetValidationError(
                f"{family} range /{network.prefixlen} is too large (minimum /{minimum})"
            )
        return cleaned

    if not _HOSTNAME_REGEX.match(cleaned):
        raise TargetValidationError(f"invalid hostname: {cleaned}")
    if len(cleaned) > _MAX_HOSTNAME_LENGTH:
        raise TargetValidationError("hostname too long")

    return cleaned


def validate_url(target: str) -> str:
    """Validate an http(s) URL target.

    Args:
        target: The raw URL supplied by the user.

    Returns:
        The stripped URL.

    Raises:
        TargetValidationError: If the URL is empty, carries shell
            metacharacters outside the URL-legal set, or has no
            ``http://``/``https://`` scheme.
    """
    cleaned = (target or "").strip()
    if not cleaned:
        raise TargetValidationError("URL cannot be empty")

    stripped = cleaned.translate({ord(ch): None for ch in _URL_SAFE_CHARS})
    if _DANGEROUS_PATTERN.search(stripped):
        raise TargetValidationError("URL contains invalid characters")

    if not cleaned.startswith(("http://", "https://")):
        raise TargetValidationError("URL must start with http:// or https://")

    return cleaned


# ── Argument Sanitization ────────────────────────────────────────────────────

def sanitize_arg(value: str) -> str:
    """Strip shell metacharacters from a single option value."""
    return _DANGEROUS_PATTERN.sub("", value or "")
