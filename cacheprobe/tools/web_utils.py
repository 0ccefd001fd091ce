from __future__ import annotations

from collections.abc import Container, Mapping
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

# Order matters: the first present header is reported by the analyzer.
CACHE_STATUS_HEADERS = (
    "x-cache",
    "cf-cache-status",
    "x-varnish",
    "x-proxy-cache",
    "x-kinsta-cache",
    "x-wpe-cached",
    "x-litespeed-cache",
)

CACHE_RELATED_HEADERS = (
    "cache-control",
    *CACHE_STATUS_HEADERS,
    "age",
    "expires",
    "vary",
    "etag",
)

SKIPPED_LINK_PREFIXES = ("#", "javascript:", "mailto:", "tel:")


def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def hostname(url: str) -> str:
    """Lower-cased hostname, raising ValueError when the URL has none."""
    host = urlparse(url).hostname
    if not host:
        raise ValueError(f"Invalid URL: {url}")
    return host.lower()


def normalize_url(url: str) -> str:
    """Origin plus path with one trailing slash dropped; query and fragment removed."""
    parsed = urlparse(url)
    path = parsed.path
    if path.endswith("/"):
        path = path[:-1]
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}"


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in headers.items()}


def detect_cache_hit(headers: Mapping[str, str]) -> bool:
    """True when a known cache-status header reports a hit."""
    lowered = _lower_keys(headers)
    for header in CACHE_STATUS_HEADERS:
        value = lowered.get(header, "").lower()
        if value and ("hit" in value or value == "cached"):
            return True
    return False


def extract_cache_headers(headers: Mapping[str, str]) -> dict[str, str]:
    lowered = _lower_keys(headers)
    return {name: lowered[name] for name in CACHE_RELATED_HEADERS if lowered.get(name)}


def extract_links(
    html: str,
    page_url: str,
    analyzed: Container[str] = (),
) -> list[str]:
    """Same-host navigable links found in ``html``, normalized and deduplicated.

    Links already present in ``analyzed`` are skipped. Links that were
    discovered earlier but never analyzed are returned again.
    """
    if not html:
        return []

    base_host = hostname(page_url)
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []

    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.lower().startswith(SKIPPED_LINK_PREFIXES):
            continue

        try:
            resolved = urlparse(urljoin(page_url, href))
        except ValueError:
            continue
        if resolved.scheme not in ("http", "https"):
            continue
        if (resolved.hostname or "").lower() != base_host:
            continue

        normalized = normalize_url(resolved.geturl())
        if normalized not in links and normalized not in analyzed:
            links.append(normalized)

    return links
