"""
HTTP built-ins: robots.txt/sitemap.xml retrieval and page metadata.

Both probes use ``httpx`` and accept an optional transport so that tests
can plug in :class:`httpx.MockTransport`.  Page markup is parsed with
BeautifulSoup's ``html.parser`` backend.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

import httpx
from bs4 import BeautifulSoup

from reconsuite.config import get_settings
from reconsuite.engine.parsers import Finding
from reconsuite.tools.base import BuiltinTool, ProbeError, ToolCategory
from reconsuite.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

_ROBOTS_LIMIT_BYTES: int = 64 * 1024
_SITEMAP_LIMIT_BYTES: int = 256 * 1024
_PAGE_LIMIT_BYTES: int = 2 * 1024 * 1024
_MAX_VALUE_CHARS: int = 500
_MAX_REDIRECTS: int = 10

_INTERESTING_HEADERS: tuple[str, ...] = (
    "Server",
    "X-Powered-By",
    "Content-Type",
    "X-Frame-Options",
    "X-Content-Type-Options",
    "Strict-Transport-Security",
    "Content-Security-Policy",
    "X-XSS-Protection",
    "Access-Control-Allow-Origin",
    "Via",
    "X-Cache",
    "X-AspNet-Version",
    "X-Generator",
)


def normalise_base_url(target: str) -> str:
    """Prefix ``https://`` when no scheme is given and drop trailing slashes."""
    target = target.strip()
    if not target.startswith(("http://", "https://")):
        target = f"https://{target}"
    return target.rstrip("/")


async def _read_limited(response: httpx.Response, limit: int) -> bytes:
    chunks: list[bytes] = []
    size = 0
    async for chunk in response.aiter_bytes():
        chunks.append(chunk)
        size += len(chunk)
        if size >= limit:
            break
    return b"".join(chunks)[:limit]


def _decode(body: bytes, charset: Optional[str]) -> str:
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


class _HttpProbe(BuiltinTool):
    """Shared client construction for the HTTP built-ins."""

    request_timeout: float = 15.0

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.request_timeout,
            follow_redirects=True,
            max_redirects=_MAX_REDIRECTS,
            headers={"User-Agent": get_settings().HTTP_USER_AGENT},
        )


# ── robots.txt / sitemap.xml ─────────────────────────────────────────────────

def disallowed_paths(robots_txt: str) -> list[str]:
    """Return every non-empty ``Disallow:`` path in source order."""
    paths: list[str] = []
    for line in robots_txt.splitlines():
        line = line.strip()
        if line.lower().startswith("disallow:"):
            path = line.split(":", 1)[1].strip()
            if path:
                paths.append(path)
    return paths


@ToolRegistry.register
class RobotsSitemapTool(_HttpProbe):
    """Fetches ``/robots.txt`` and ``/sitemap.xml`` from the target site."""

    name = "robots_sitemap"
    label = "Robots.txt & Sitemap"
    category = ToolCategory.WEB

    async def probe(self, target: str, parameters: Mapping[str, object]) -> list[Finding]:
        base = normalise_base_url(target)
        findings: list[Finding] = []

        async with self._client() as client:
            robots = await self._fetch(client, f"{base}/robots.txt", _ROBOTS_LIMIT_BYTES)
            if robots is not None:
                findings.append(Finding("robots", "robots.txt", robots))
                findings.extend(
                    Finding("disallowed_path", path, "disallowed")
                    for path in disallowed_paths(robots)
                )

            sitemap = await self._fetch(client, f"{base}/sitemap.xml", _SITEMAP_LIMIT_BYTES)
            if sitemap is not None:
                findings.append(Finding("sitemap", "sitemap.xml", sitemap))

        if not findings:
            raise ProbeError("neither robots.txt nor sitemap.xml found")
        return findings

    @staticmethod
    async def _fetch(client: httpx.AsyncClient, url: str, limit: int) -> Optional[str]:
        """GET *url*; return the (truncated) body on HTTP 200, else ``None``."""
        try:
            async with client.stream("GET", url) as response:
                if response.status_code != 200:
                    return None
                body = await _read_limited(response, limit)
        except httpx.HTTPError as exc:
            logger.info(
                "Fetch failed: %s", exc,
                extra={"action": "robots_sitemap", "target": url},
            )
            return None
        return _decode(body, response.charset_encoding)


# ── Page metadata ────────────────────────────────────────────────────────────

def extract_page_metadata(html: str) -> list[Finding]:
    """Title, meta tags, canonical URL, and favicon of an HTML document."""
    soup = BeautifulSoup(html, "html.parser")
    findings: list[Finding] = []

    if soup.title is not None:
        title = soup.title.get_text(strip=True)
        if title:
            findings.append(Finding("metadata", "title", title[:_MAX_VALUE_CHARS]))

    metas: dict[str, str] = {}
    for tag in soup.find_all("meta"):
        name = tag.get("name") or tag.get("property")
        content = tag.get("content")
        if name and content:
            metas[str(name).lower()] = str(content)[:_MAX_VALUE_CHARS]
    findings.extend(Finding("metadata", name, content) for name, content in metas.items())

    canonical = _link_href(soup, "canonical")
    if canonical:
        findings.append(Finding("metadata", "canonical", canonical))

    favicon = _link_href(soup, "icon") or _link_href(soup, "shortcut icon")
    if favicon:
        findings.append(Finding("metadata", "favicon", favicon))

    return findings


def _link_href(soup: BeautifulSoup, rel_value: str) -> str:
    for link in soup.find_all("link"):
        rel = link.get("rel") or []
        rel_text = " ".join(rel) if isinstance(rel, list) else str(rel)
        href = link.get("href")
        if rel_value in rel_text.lower() and href:
            return str(href)
    return ""


@ToolRegistry.register
class MetadataExtractTool(_HttpProbe):
    """Status, security-relevant headers, and HTML metadata of a page."""

    name = "metadata_extract"
    label = "Metadata Extractor"
    category = ToolCategory.WEB
    announce = "Extracting metadata from: {target}"
    request_timeout = 20.0

    async def probe(self, target: str, parameters: Mapping[str, object]) -> list[Finding]:
        url = target.strip()
        if not url.startswith(("http://", "https://")):
            url = f"https://{url}"

        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    findings = [
                        Finding(
                            "metadata",
                            "http_status",
                            f"{response.status_code} {response.reason_phrase}".strip(),
                        ),
                        Finding("metadata", "final_url", str(response.url)),
                    ]
                    for header in _INTERESTING_HEADERS:
                        value = response.headers.get(header)
                        if value:
                            findings.append(Finding("metadata", f"header:{header.lower()}", value))
                    body = await _read_limited(response, _PAGE_LIMIT_BYTES)
        except httpx.HTTPError as exc:
            raise ProbeError(f"fetch URL: {str(exc) or type(exc).__name__}") from exc

        html = _decode(body, response.charset_encoding)
        findings.extend(extract_page_metadata(html))
        return findings
