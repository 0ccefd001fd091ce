from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class CacheStatus:
    working: bool
    header: str | None = None
    value: str | None = None
    explanation: str = ""


@dataclass(slots=True)
class TimingAnalysis:
    first_ttfb: int = 0
    second_ttfb: int = 0
    improvement: float = 0.0  # percent, second request vs first


@dataclass(slots=True)
class DetectedPlugin:
    name: str
    category: str
    evidence: str


@dataclass(slots=True)
class DetectedCdn:
    name: str
    evidence: str


@dataclass(slots=True)
class Conflict:
    plugins: list[str]
    severity: str
    reason: str


@dataclass(slots=True)
class ServerSpecs:
    server: str | None = None
    php_version: str | None = None


@dataclass(slots=True)
class PageAnalysis:
    is_wordpress: bool
    cache_status: CacheStatus
    timing: TimingAnalysis = field(default_factory=TimingAnalysis)
    plugins: list[DetectedPlugin] = field(default_factory=list)
    cdns: list[DetectedCdn] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    server_specs: ServerSpecs = field(default_factory=ServerSpecs)
    hosting: str | None = None
