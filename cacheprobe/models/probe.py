from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class Timing:
    ttfb: int = 0
    total: int = 0


@dataclass(slots=True)
class FetchResult:
    """Outcome of one HTTP request. Header keys are lower-cased."""

    url: str
    status_code: int = 0
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    timing: Timing = field(default_factory=Timing)
    error: str | None = None


@dataclass(slots=True)
class ProbeSample:
    status_code: int
    ttfb: int
    headers: dict[str, str] = field(default_factory=dict)
    cache_hit: bool = False
    error: str | None = None


@dataclass(slots=True)
class DoubleHit:
    first_request: ProbeSample
    second_request: ProbeSample
    delay_ms: int = 0


@dataclass(slots=True)
class CacheProbeResult:
    url: str
    double_hit: DoubleHit


@dataclass(slots=True)
class DnsResult:
    hostname: str
    addresses: list[str] = field(default_factory=list)
    cnames: list[str] = field(default_factory=list)
    nameservers: list[str] = field(default_factory=list)
    detected: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RestPlugin:
    name: str
    namespace: str
    category: str


@dataclass(slots=True)
class SiteHealth:
    php_version: str | None = None
    mysql_version: str | None = None
    server_software: str | None = None
    object_cache: bool | None = None
    active_plugins_count: int | None = None


@dataclass(slots=True)
class WordPressInfo:
    is_wordpress: bool = False
    wp_version: str | None = None
    site_name: str | None = None
    site_description: str | None = None
    namespaces: list[str] = field(default_factory=list)
    rest_plugins: list[RestPlugin] = field(default_factory=list)
    site_health: SiteHealth | None = None
    error: str | None = None
