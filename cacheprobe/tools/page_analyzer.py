from __future__ import annotations

import re
from dataclasses import dataclass

from cacheprobe.models.analysis import (
    CacheStatus,
    Conflict,
    DetectedCdn,
    DetectedPlugin,
    PageAnalysis,
    ServerSpecs,
    TimingAnalysis,
)
from cacheprobe.models.probe import CacheProbeResult, FetchResult
from cacheprobe.tools.web_utils import CACHE_STATUS_HEADERS, detect_cache_hit

# Second request at least this much faster counts as cached when no header says so.
TIMING_IMPROVEMENT_THRESHOLD = 50.0

WORDPRESS_MARKERS = ("/wp-content/", "/wp-includes/", "wp-json")

PHP_VERSION_RE = re.compile(r"PHP/([\d.]+)", re.IGNORECASE)


@dataclass(frozen=True)
class Signature:
    name: str
    category: str
    headers: tuple[str, ...] = ()
    header_values: tuple[tuple[str, str], ...] = ()
    markers: tuple[str, ...] = ()


PLUGIN_SIGNATURES = (
    Signature("WP Rocket", "page-cache", headers=("x-rocket-nginx-bypass",),
              markers=("wp-rocket", "this website is like a rocket")),
    Signature("W3 Total Cache", "page-cache", header_values=(("x-powered-by", "w3 total cache"),),
              markers=("performance optimized by w3 total cache",)),
    Signature("WP Super Cache", "page-cache", markers=("wp-super-cache",)),
    Signature("WP Fastest Cache", "page-cache", markers=("wp fastest cache",)),
    Signature("LiteSpeed Cache", "page-cache", headers=("x-litespeed-cache",),
              markers=("litespeed-cache",)),
    Signature("Cache Enabler", "page-cache", markers=("cache enabler by keycdn",)),
    Signature("SiteGround Optimizer", "page-cache", markers=("sg-optimizer", "siteground optimizer")),
    Signature("Autoptimize", "optimization", markers=("/cache/autoptimize/",)),
)

CDN_SIGNATURES = (
    Signature("Cloudflare", "cdn", headers=("cf-ray",), header_values=(("server", "cloudflare"),)),
    Signature("Fastly", "cdn", headers=("x-fastly-request-id",), header_values=(("x-served-by", "cache-"),)),
    Signature("CloudFront", "cdn", headers=("x-amz-cf-id",), header_values=(("via", "cloudfront"),)),
    Signature("Akamai", "cdn", headers=("x-akamai-transformed",), header_values=(("server", "akamaighost"),)),
    Signature("Sucuri", "cdn", headers=("x-sucuri-id",)),
    Signature("BunnyCDN", "cdn", header_values=(("server", "bunnycdn"),)),
    Signature("KeyCDN", "cdn", header_values=(("server", "keycdn"),)),
)

HOSTING_SIGNATURES = (
    Signature("Kinsta", "hosting", headers=("x-kinsta-cache",)),
    Signature("WP Engine", "hosting", headers=("x-wpe-cached", "wpe-backend")),
    Signature("Pantheon", "hosting", headers=("x-pantheon-styx-hostname",)),
    Signature("Flywheel", "hosting", headers=("x-fw-hash",)),
    Signature("WordPress VIP", "hosting", header_values=(("x-powered-by", "wordpress vip"),)),
)

# Hosts that run their own page cache in front of WordPress.
MANAGED_CACHE_HOSTS = {"Kinsta", "WP Engine", "Pantheon", "Flywheel", "WordPress VIP"}


def _match(signature: Signature, headers: dict[str, str], body: str) -> str | None:
    for header in signature.headers:
        if header in headers:
            return f"header {header}"
    for header, needle in signature.header_values:
        if needle in headers.get(header, "").lower():
            return f"header {header}: {headers[header]}"
    for marker in signature.markers:
        if marker in body:
            return f"markup contains '{marker}'"
    return None


def _cache_status(headers: dict[str, str], timing: TimingAnalysis) -> CacheStatus:
    for header in CACHE_STATUS_HEADERS:
        if header in headers:
            value = headers[header]
            working = detect_cache_hit({header: value})
            explanation = (
                f"{header} reports a cache hit on the repeat request"
                if working
                else f"{header} reports '{value}' on the repeat request; the page was not served from cache"
            )
            return CacheStatus(working=working, header=header, value=value, explanation=explanation)

    if timing.improvement >= TIMING_IMPROVEMENT_THRESHOLD:
        return CacheStatus(
            working=True,
            explanation=(
                f"No cache status header, but the repeat request was {timing.improvement:.0f}% faster"
            ),
        )
    return CacheStatus(
        working=False,
        explanation="No cache status header and no meaningful speed-up on the repeat request",
    )


def _timing(probe: CacheProbeResult | None, fetch_result: FetchResult) -> TimingAnalysis:
    if probe is None:
        return TimingAnalysis(first_ttfb=fetch_result.timing.ttfb, second_ttfb=fetch_result.timing.ttfb)
    first = probe.double_hit.first_request.ttfb
    second = probe.double_hit.second_request.ttfb
    improvement = round((first - second) / first * 100, 1) if first > 0 else 0.0
    return TimingAnalysis(first_ttfb=first, second_ttfb=second, improvement=improvement)


def _conflicts(plugins: list[DetectedPlugin], hosting: str | None) -> list[Conflict]:
    page_caches = [p.name for p in plugins if p.category == "page-cache"]
    conflicts: list[Conflict] = []
    if len(page_caches) > 1:
        conflicts.append(
            Conflict(
                plugins=page_caches,
                severity="high",
                reason="Multiple page caching plugins are active and can serve stale or double-cached pages",
            )
        )
    if page_caches and hosting in MANAGED_CACHE_HOSTS:
        conflicts.append(
            Conflict(
                plugins=[*page_caches, hosting],
                severity="medium",
                reason=f"{hosting} already caches pages at the server level; a plugin page cache duplicates it",
            )
        )
    return conflicts


def analyze(fetch_result: FetchResult, probe: CacheProbeResult | None = None) -> PageAnalysis:
    """Rule-based reading of one fetched page and its double-hit probe."""
    # Prefer the warmed response for header checks.
    headers = dict(fetch_result.headers)
    if probe is not None and not probe.double_hit.second_request.error:
        headers.update(probe.double_hit.second_request.headers)
    body = (fetch_result.body or "").lower()

    timing = _timing(probe, fetch_result)

    plugins: list[DetectedPlugin] = []
    for signature in PLUGIN_SIGNATURES:
        evidence = _match(signature, headers, body)
        if evidence:
            plugins.append(DetectedPlugin(signature.name, signature.category, evidence))

    cdns: list[DetectedCdn] = []
    for signature in CDN_SIGNATURES:
        evidence = _match(signature, headers, body)
        if evidence:
            cdns.append(DetectedCdn(signature.name, evidence))

    hosting = next((s.name for s in HOSTING_SIGNATURES if _match(s, headers, body)), None)

    php_match = PHP_VERSION_RE.search(headers.get("x-powered-by", ""))

    return PageAnalysis(
        is_wordpress=any(marker in body for marker in WORDPRESS_MARKERS)
        or "api.w.org" in headers.get("link", ""),
        cache_status=_cache_status(headers, timing),
        timing=timing,
        plugins=plugins,
        cdns=cdns,
        conflicts=_conflicts(plugins, hosting),
        server_specs=ServerSpecs(
            server=headers.get("server"),
            php_version=php_match.group(1) if php_match else None,
        ),
        hosting=hosting,
    )
