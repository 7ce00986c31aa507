"""
Passive OSINT built-ins.

Neither tool contacts the target: both only assemble search queries and
links to public data sources for an analyst to open.
"""

from __future__ import annotations

import ipaddress
from typing import Mapping

from reconsuite.engine.parsers import Finding
from reconsuite.tools.base import BuiltinTool, ToolCategory
from reconsuite.tools.registry import ToolRegistry

_GOOGLE_SEARCH_URL: str = "https://www.google.com/search?q="

_DORKS: tuple[tuple[str, str], ...] = (
    ("files", "site:{t} filetype:pdf"),
    ("files", "site:{t} filetype:doc OR filetype:docx OR filetype:xls"),
    ("files", "site:{t} filetype:sql OR filetype:bak OR filetype:log"),
    ("login", "site:{t} inurl:login OR inurl:admin OR inurl:signin"),
    ("login", 'site:{t} intitle:"index of"'),
    ("sensitive", 'site:{t} intext:"password" OR intext:"username" filetype:log'),
    ("sensitive", "site:{t} ext:env OR ext:cfg OR ext:conf"),
    ("subdomains", "site:*.{t} -www"),
    ("technology", "site:{t} inurl:wp-content OR inurl:wp-admin"),
    ("errors", 'site:{t} "error" OR "warning" OR "stack trace"'),
)


def _is_ip(target: str) -> bool:
    try:
        ipaddress.ip_address(target)
    except ValueError:
        return False
    return True


@ToolRegistry.register
class GoogleDorkingTool(BuiltinTool):
    """Ready-to-open Google dork searches scoped to the target."""

    name = "google_dorking"
    label = "Google Dorking"
    category = ToolCategory.PASSIVE
    announce = "Generated Google dork queries for: {target}"

    async def probe(self, target: str, parameters: Mapping[str, object]) -> list[Finding]:
        findings: list[Finding] = []
        for category, template in _DORKS:
            query = template.format(t=target)
            findings.append(
                Finding(
                    result_type="google_dork",
                    key=category,
                    value=_GOOGLE_SEARCH_URL + query.replace(" ", "+"),
                    details={"query": query},
                )
            )
        return findings


@ToolRegistry.register
class OsintAggregatorTool(BuiltinTool):
    """Links to public intelligence sources for a domain or IP address."""

    name = "osint_aggregator"
    label = "OSINT Aggregator"
    category = ToolCategory.PASSIVE
    announce = "Generated OSINT resource links for: {target}"

    async def probe(self, target: str, parameters: Mapping[str, object]) -> list[Finding]:
        links = [
            ("VirusTotal", f"https://www.virustotal.com/gui/domain/{target}"),
            ("crt.sh", f"https://crt.sh/?q=%25.{target}"),
            ("SecurityTrails", f"https://securitytrails.com/domain/{target}"),
            ("DNSDumpster", "https://dnsdumpster.com/"),
            ("Wayback Machine", f"https://web.archive.org/web/*/{target}"),
        ]
        if _is_ip(target):
            links += [
                ("Shodan", f"https://www.shodan.io/host/{target}"),
                ("Censys", f"https://search.censys.io/hosts/{target}"),
                ("GreyNoise", f"https://viz.greynoise.io/ip/{target}"),
                ("AbuseIPDB", f"https://www.abuseipdb.com/check/{target}"),
            ]
        else:
            links += [
                ("Shodan", f"https://www.shodan.io/search?query=hostname:{target}"),
                ("Censys", f"https://search.censys.io/search?resource=hosts&q={target}"),
            ]
        return [Finding("osint_link", name, url) for name, url in links]
