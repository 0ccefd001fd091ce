from __future__ import annotations

import json
import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from cacheprobe.models.probe import RestPlugin, SiteHealth, WordPressInfo
from cacheprobe.tools import http_client

# REST namespace prefix -> (plugin name, category)
NAMESPACE_PLUGINS = {
    "litespeed": ("LiteSpeed Cache", "cache"),
    "w3tc": ("W3 Total Cache", "cache"),
    "wp-rocket": ("WP Rocket", "cache"),
    "wpsc": ("WP Super Cache", "cache"),
    "wpfc": ("WP Fastest Cache", "cache"),
    "sg-cachepress": ("SiteGround Optimizer", "cache"),
    "siteground-optimizer": ("SiteGround Optimizer", "cache"),
    "autoptimize": ("Autoptimize", "optimization"),
    "redis-cache": ("Redis Object Cache", "object-cache"),
    "jetpack": ("Jetpack", "performance"),
    "wc": ("WooCommerce", "ecommerce"),
    "yoast": ("Yoast SEO", "seo"),
    "rankmath": ("Rank Math", "seo"),
    "elementor": ("Elementor", "builder"),
    "contact-form-7": ("Contact Form 7", "forms"),
    "wordfence": ("Wordfence", "security"),
}

PHP_VERSION_RE = re.compile(r"PHP/([\d.]+)", re.IGNORECASE)
GENERATOR_RE = re.compile(r"WordPress\s+([\d.]+)", re.IGNORECASE)


def _site_root(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")
    return f"{parsed.scheme}://{parsed.netloc}"


def detect_rest_plugins(namespaces: list[str]) -> list[RestPlugin]:
    plugins: list[RestPlugin] = []
    seen: set[str] = set()
    for namespace in namespaces:
        prefix = namespace.split("/", 1)[0].lower()
        match = NAMESPACE_PLUGINS.get(prefix)
        if match and match[0] not in seen:
            seen.add(match[0])
            plugins.append(RestPlugin(name=match[0], namespace=namespace, category=match[1]))
    return plugins


def parse_generator_version(html: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    meta = soup.find("meta", attrs={"name": "generator"})
    content = meta.get("content") if meta else None
    if not isinstance(content, str):
        return None
    match = GENERATOR_RE.search(content)
    return match.group(1) if match else None


async def check_site_health(url: str, *, timeout_ms: int) -> WordPressInfo:
    """Inspect the public WordPress REST index and homepage of the site at ``url``."""
    try:
        root = _site_root(url)
    except ValueError as exc:
        return WordPressInfo(error=str(exc))

    api = await http_client.fetch(
        f"{root}/wp-json/",
        timeout_ms=timeout_ms,
        headers={"Accept": "application/json"},
    )
    if api.error:
        return WordPressInfo(error=f"REST API request failed: {api.error}")
    if api.status_code != 200:
        return WordPressInfo(error=f"REST API returned HTTP {api.status_code}")

    try:
        payload = json.loads(api.body)
    except json.JSONDecodeError:
        return WordPressInfo(error="REST API response is not JSON")
    if not isinstance(payload, dict) or "namespaces" not in payload:
        return WordPressInfo(error="No WordPress REST index found")

    namespaces = [str(ns) for ns in payload.get("namespaces") or []]
    rest_plugins = detect_rest_plugins(namespaces)

    wp_version = None
    home = await http_client.fetch(f"{root}/", timeout_ms=timeout_ms)
    if not home.error and home.body:
        wp_version = parse_generator_version(home.body)

    powered_by = api.headers.get("x-powered-by", "")
    php_match = PHP_VERSION_RE.search(powered_by)
    site_health = SiteHealth(
        php_version=php_match.group(1) if php_match else None,
        server_software=api.headers.get("server"),
        object_cache=any(p.category == "object-cache" for p in rest_plugins),
        active_plugins_count=len(rest_plugins),
    )

    return WordPressInfo(
        is_wordpress=True,
        wp_version=wp_version,
        site_name=payload.get("name"),
        site_description=payload.get("description"),
        namespaces=namespaces,
        rest_plugins=rest_plugins,
        site_health=site_health,
    )
