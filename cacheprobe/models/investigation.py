from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from cacheprobe.config import settings
from cacheprobe.models.analysis import PageAnalysis
from cacheprobe.models.probe import CacheProbeResult, FetchResult


@dataclass(frozen=True)
class InvestigationConfig:
    """Immutable settings for one investigation run.

    ``api_key`` is only an explicit override; when it is None the oracle falls
    back to the key configured for ``provider``. ``verbose`` is read by the CLI
    for progress output and does not change how the investigation runs.
    """

    base_url: str
    timeout_ms: int = 30000
    api_key: str | None = None
    provider: str | None = None
    max_iterations: int = 20
    verbose: bool = False

    @classmethod
    def from_settings(cls, base_url: str, **overrides: Any) -> "InvestigationConfig":
        values: dict[str, Any] = {
            "timeout_ms": settings.request_timeout_ms,
            "provider": settings.oracle_provider,
            "max_iterations": settings.max_iterations,
            "verbose": False,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(base_url=base_url, **values)

    @property
    def base_hostname(self) -> str:
        return (urlparse(self.base_url).hostname or "").lower()


@dataclass
class PageResult:
    url: str
    fetch_result: FetchResult
    analysis: PageAnalysis
    cache_probe: CacheProbeResult | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ExperimentResult:
    name: str
    hypothesis: str
    method: str
    result: str
    conclusion: str = ""


@dataclass
class FinalAnalysis:
    summary: str
    recommendations: list[str]
    confidence: str
    areas_needing_more_investigation: list[str] | None = None


@dataclass
class InvestigationMemory:
    """Everything learned during one run.

    The experiment, observation and hypothesis logs are append-only and
    ``discovered_urls`` only grows. ``analyzed_pages`` is keyed by normalized
    URL; a re-fetch replaces the previous entry.
    """

    analyzed_pages: dict[str, PageResult] = field(default_factory=dict)
    discovered_urls: set[str] = field(default_factory=set)
    experiments: list[ExperimentResult] = field(default_factory=list)
    observations: list[str] = field(default_factory=list)
    hypotheses: list[str] = field(default_factory=list)

    @classmethod
    def seeded(cls, base_url: str) -> "InvestigationMemory":
        return cls(discovered_urls={base_url})

    def record_page(self, key: str, page: PageResult) -> None:
        self.analyzed_pages[key] = page

    def merge_discovered(self, urls: list[str]) -> list[str]:
        added = [url for url in urls if url not in self.discovered_urls]
        self.discovered_urls.update(added)
        return added

    def add_experiment(self, experiment: ExperimentResult) -> None:
        self.experiments.append(experiment)

    def add_observation(self, text: str) -> None:
        self.observations.append(text)

    def add_hypothesis(self, text: str) -> None:
        self.hypotheses.append(text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "observations": list(self.observations),
            "hypotheses": list(self.hypotheses),
            "pages_analyzed": list(self.analyzed_pages.keys()),
            "discovered_urls": sorted(self.discovered_urls),
        }


class InvestigationState(str, Enum):
    INIT = "init"
    AWAITING_ORACLE = "awaiting_oracle"
    EXECUTING_TOOLS = "executing_tools"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass
class InvestigationSession:
    """Mutable run context passed to the orchestrator and every tool handler."""

    config: InvestigationConfig
    memory: InvestigationMemory
    conversation: list[dict[str, Any]] = field(default_factory=list)
    iteration: int = 0
    state: InvestigationState = InvestigationState.INIT
    final_analysis: FinalAnalysis | None = None
    completed: bool = False
    error: str | None = None

    @classmethod
    def start(cls, config: InvestigationConfig) -> "InvestigationSession":
        return cls(config=config, memory=InvestigationMemory.seeded(config.base_url))

    def complete(self, analysis: FinalAnalysis) -> None:
        if self.completed:
            raise RuntimeError("Investigation already completed")
        self.final_analysis = analysis
        self.completed = True


@dataclass
class AgentSummary:
    pages_analyzed: int
    cache_working: bool
    detected_plugins: list[str]
    detected_cdns: list[str]
    conflicts: list[str]
    experiments: list[ExperimentResult]
    final_analysis: str
    recommendations: list[str]
    confidence: str | None = None
    areas_needing_more_investigation: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
