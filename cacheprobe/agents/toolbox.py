from __future__ import annotations

import asyncio
import json
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Literal

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from cacheprobe.config import settings
from cacheprobe.models.analysis import PageAnalysis
from cacheprobe.models.events import SSEEvent
from cacheprobe.models.investigation import (
    ExperimentResult,
    FinalAnalysis,
    InvestigationSession,
    PageResult,
)
from cacheprobe.models.probe import CacheProbeResult, DnsResult, FetchResult, WordPressInfo
from cacheprobe.services import logger as log_service
from cacheprobe.services import streaming
from cacheprobe.tools import cache_tester, dns_lookup, http_client, page_analyzer, web_utils, wp_site_health

MAX_LINKS_IN_RESULT = 10

MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 16_0 like Mac OS X) AppleWebKit/605.1.15"
)

# post_request is advertised to the oracle but has no variant; it is rejected like any unknown type.
TEST_TYPES = (
    "bypass_header",
    "vary_encoding",
    "with_cookie",
    "query_string",
    "mobile_ua",
    "post_request",
)

COMPLETION_MESSAGE = "Analysis complete. The agent will now generate the final report."


class ToolName(str, Enum):
    FETCH_PAGE = "fetch_page"
    TEST_CACHE_BEHAVIOR = "test_cache_behavior"
    DNS_LOOKUP = "dns_lookup"
    CHECK_WORDPRESS_API = "check_wordpress_api"
    RECORD_OBSERVATION = "record_observation"
    FORM_HYPOTHESIS = "form_hypothesis"
    COMPLETE_ANALYSIS = "complete_analysis"


# --- Tool inputs ---


class FetchPageInput(BaseModel):
    url: str = Field(description="The full URL to fetch and analyze")


class CacheBehaviorInput(BaseModel):
    url: str = Field(description="The URL to test")
    test_type: str = Field(
        description="Type of cache test to run",
        json_schema_extra={"enum": list(TEST_TYPES)},
    )
    hypothesis: str = Field(description="What you expect to happen and why")


class DnsLookupInput(BaseModel):
    url: str = Field(description="The URL to lookup")


class WordPressApiInput(BaseModel):
    url: str = Field(description="The base URL of the WordPress site")


class RecordObservationInput(BaseModel):
    observation: str = Field(description="The observation to record")


class FormHypothesisInput(BaseModel):
    hypothesis: str = Field(description="The hypothesis to test")


class CompleteAnalysisInput(BaseModel):
    summary: str = Field(description="Summary of what you found")
    recommendations: list[str] = Field(description="List of specific, actionable recommendations")
    confidence: Literal["low", "medium", "high"] = Field(
        description="How confident you are in your analysis"
    )
    areas_needing_more_investigation: list[str] | None = Field(
        default=None,
        description="Areas that would benefit from more investigation",
    )


# --- Registry ---


ToolResult = tuple[str, list[SSEEvent]]
ToolHandler = Callable[[InvestigationSession, Any], Awaitable[ToolResult]]


@dataclass
class Collaborators:
    """External services the tools call. Tests swap in fakes."""

    fetch: Callable[..., Awaitable[FetchResult]] = http_client.fetch
    probe_cache: Callable[..., Awaitable[CacheProbeResult]] = cache_tester.probe_cache
    lookup_dns: Callable[..., Awaitable[DnsResult]] = dns_lookup.lookup
    check_wordpress: Callable[..., Awaitable[WordPressInfo]] = wp_site_health.check_site_health
    analyze: Callable[[FetchResult, CacheProbeResult | None], PageAnalysis] = page_analyzer.analyze


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler

    def definition(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        return {
            "name": self.name.value,
            "description": self.description,
            "input_schema": schema,
        }


class Toolbox:
    """The fixed set of diagnostic actions the oracle can invoke.

    ``dispatch`` never raises: unknown names, invalid input and handler
    failures all come back as text for the oracle to read.
    """

    def __init__(
        self,
        collaborators: Collaborators | None = None,
        experiment_delay_ms: int | None = None,
    ):
        self.collaborators = collaborators or Collaborators()
        self.experiment_delay_ms = (
            settings.experiment_delay_ms if experiment_delay_ms is None else experiment_delay_ms
        )
        self._specs: dict[ToolName, ToolSpec] = {spec.name: spec for spec in self._build_specs()}
        missing = [name.value for name in ToolName if name not in self._specs]
        if missing:
            raise RuntimeError(f"Tools without handlers: {', '.join(missing)}")

    def _build_specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                ToolName.FETCH_PAGE,
                "Fetch a page and analyze its cache configuration. "
                "Use this to explore different pages on the site.",
                FetchPageInput,
                self._fetch_page,
            ),
            ToolSpec(
                ToolName.TEST_CACHE_BEHAVIOR,
                "Test how the cache responds to specific conditions. "
                "Use this to experiment with cache behavior.",
                CacheBehaviorInput,
                self._test_cache_behavior,
            ),
            ToolSpec(
                ToolName.DNS_LOOKUP,
                "Perform DNS lookup to detect CDN and hosting provider.",
                DnsLookupInput,
                self._dns_lookup,
            ),
            ToolSpec(
                ToolName.CHECK_WORDPRESS_API,
                "Query WordPress REST API for site information, plugins, and configuration.",
                WordPressApiInput,
                self._check_wordpress_api,
            ),
            ToolSpec(
                ToolName.RECORD_OBSERVATION,
                "Record an observation or insight about the cache configuration.",
                RecordObservationInput,
                self._record_observation,
            ),
            ToolSpec(
                ToolName.FORM_HYPOTHESIS,
                "Form a hypothesis about the cache behavior that you want to test.",
                FormHypothesisInput,
                self._form_hypothesis,
            ),
            ToolSpec(
                ToolName.COMPLETE_ANALYSIS,
                "Call this when you have gathered enough information and are ready "
                "to provide final recommendations.",
                CompleteAnalysisInput,
                self._complete_analysis,
            ),
        ]

    def definitions(self) -> list[dict[str, Any]]:
        return [spec.definition() for spec in self._specs.values()]

    async def dispatch(
        self,
        session: InvestigationSession,
        name: str,
        tool_input: Any,
    ) -> ToolResult:
        events = [streaming.tool_use(name, tool_input)]
        t0 = time.monotonic()

        try:
            spec = self._specs[ToolName(name)]
        except ValueError:
            log_service.log_tool_call(name, session.iteration, "unknown", error="unknown tool")
            return f"Unknown tool: {name}", events

        try:
            params = spec.input_model.model_validate({} if tool_input is None else tool_input)
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}"
                for err in exc.errors()
            )
            log_service.log_tool_call(name, session.iteration, "invalid_input", error=details)
            return f"Invalid input for {name}: {details}", events

        try:
            result, handler_events = await spec.handler(session, params)
        except Exception as exc:
            logger.warning(f"Tool {name} failed: {exc!r}")
            log_service.log_tool_call(
                name,
                session.iteration,
                "error",
                duration_ms=int((time.monotonic() - t0) * 1000),
                input_data=params.model_dump(),
                error=str(exc),
            )
            return f"Error executing {name}: {exc}", events

        log_service.log_tool_call(
            name,
            session.iteration,
            "success",
            duration_ms=int((time.monotonic() - t0) * 1000),
            input_data=params.model_dump(),
        )
        return result, events + handler_events

    # --- Handlers ---

    async def _fetch_page(self, session: InvestigationSession, params: FetchPageInput) -> ToolResult:
        url = params.url
        base_url = session.config.base_url
        logger.info(f"Fetching: {url}")

        try:
            target_host = web_utils.hostname(url)
        except ValueError:
            return f"Invalid URL: {url}", []
        if target_host != session.config.base_hostname:
            return f"Cannot fetch {url} - different domain than {base_url}", []

        timeout_ms = session.config.timeout_ms
        fetch_result = await self.collaborators.fetch(url, timeout_ms=timeout_ms)
        if fetch_result.error:
            return f"Failed to fetch {url}: {fetch_result.error}", []

        probe = await self.collaborators.probe_cache(url, timeout_ms=timeout_ms)
        analysis = self.collaborators.analyze(fetch_result, probe)

        memory = session.memory
        memory.record_page(
            web_utils.normalize_url(url),
            PageResult(url=url, fetch_result=fetch_result, cache_probe=probe, analysis=analysis),
        )

        links = web_utils.extract_links(fetch_result.body, url, memory.analyzed_pages)
        memory.merge_discovered(links)

        payload = {
            "url": url,
            "status_code": fetch_result.status_code,
            "is_wordpress": analysis.is_wordpress,
            "cache_status": {
                "working": analysis.cache_status.working,
                "header": analysis.cache_status.header,
                "value": analysis.cache_status.value,
                "explanation": analysis.cache_status.explanation,
            },
            "timing": {
                "ttfb_first": probe.double_hit.first_request.ttfb,
                "ttfb_second": probe.double_hit.second_request.ttfb,
                "improvement": analysis.timing.improvement,
            },
            "detected_plugins": [p.name for p in analysis.plugins],
            "detected_cdns": [c.name for c in analysis.cdns],
            "conflicts": [
                {"plugins": c.plugins, "severity": c.severity, "reason": c.reason}
                for c in analysis.conflicts
            ],
            "discovered_links": links[:MAX_LINKS_IN_RESULT],
            "server_info": {
                "server": analysis.server_specs.server,
                "hosting": analysis.hosting,
                "php_version": analysis.server_specs.php_version,
            },
        }
        events = [
            streaming.page_analyzed(
                url,
                analysis.cache_status.working,
                explanation=analysis.cache_status.explanation,
                links_found=len(links),
            )
        ]
        return json.dumps(payload, indent=2), events

    @staticmethod
    def build_variant(url: str, test_type: str) -> tuple[str, dict[str, str], str] | None:
        """(request url, headers, description) for a test type, or None when unsupported."""
        stamp = int(time.time() * 1000)
        if test_type == "bypass_header":
            return url, {"Cache-Control": "no-cache", "Pragma": "no-cache"}, (
                "Testing if cache respects no-cache directive"
            )
        if test_type == "vary_encoding":
            return url, {"Accept-Encoding": "identity"}, (
                "Testing cache behavior with different Accept-Encoding"
            )
        if test_type == "with_cookie":
            return url, {"Cookie": f"wordpress_test_cookie={stamp}"}, "Testing if cookies bypass cache"
        if test_type == "query_string":
            separator = "&" if "?" in url else "?"
            return f"{url}{separator}cache_bust={stamp}", {}, "Testing cache behavior with query strings"
        if test_type == "mobile_ua":
            return url, {"User-Agent": MOBILE_USER_AGENT}, (
                "Testing if mobile requests are cached separately"
            )
        return None

    @staticmethod
    def _request_summary(result: FetchResult, cache_hit: bool) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "status_code": result.status_code,
            "ttfb": result.timing.ttfb,
            "cache_hit": cache_hit,
            "cache_headers": web_utils.extract_cache_headers(result.headers),
        }
        if result.error:
            summary["error"] = result.error
        return summary

    async def _test_cache_behavior(
        self, session: InvestigationSession, params: CacheBehaviorInput
    ) -> ToolResult:
        test_type = params.test_type
        logger.info(f"Running cache experiment: {test_type} on {params.url}")

        variant = self.build_variant(params.url, test_type)
        if variant is None:
            return f"Unknown test type: {test_type}", []
        test_url, headers, description = variant

        timeout_ms = session.config.timeout_ms
        first = await self.collaborators.fetch(test_url, timeout_ms=timeout_ms, headers=headers)
        await asyncio.sleep(self.experiment_delay_ms / 1000)
        second = await self.collaborators.fetch(test_url, timeout_ms=timeout_ms, headers=headers)

        hit_first = web_utils.detect_cache_hit(first.headers)
        hit_second = web_utils.detect_cache_hit(second.headers)

        experiment = ExperimentResult(
            name=test_type,
            hypothesis=params.hypothesis,
            method=description,
            result=(
                f"First request: {'HIT' if hit_first else 'MISS'} ({first.timing.ttfb}ms), "
                f"Second: {'HIT' if hit_second else 'MISS'} ({second.timing.ttfb}ms)"
            ),
        )
        session.memory.add_experiment(experiment)

        payload = {
            "test_type": test_type,
            "hypothesis": params.hypothesis,
            "description": description,
            "results": {
                "first_request": self._request_summary(first, hit_first),
                "second_request": self._request_summary(second, hit_second),
            },
            "interpretation": {
                "cache_respected_bypass": test_type == "bypass_header" and not hit_first,
                "cookies_bypass_cache": test_type == "with_cookie" and not hit_second,
                "query_strings_cached": test_type == "query_string" and hit_second,
                "mobile_served_separately": test_type == "mobile_ua",
            },
        }
        return json.dumps(payload, indent=2), [streaming.experiment_complete(asdict(experiment))]

    async def _dns_lookup(self, session: InvestigationSession, params: DnsLookupInput) -> ToolResult:
        logger.info(f"DNS lookup: {params.url}")
        result = await self.collaborators.lookup_dns(params.url, timeout_ms=session.config.timeout_ms)
        return json.dumps(asdict(result), indent=2), []

    async def _check_wordpress_api(
        self, session: InvestigationSession, params: WordPressApiInput
    ) -> ToolResult:
        logger.info(f"Checking WordPress API: {params.url}")
        result = await self.collaborators.check_wordpress(
            params.url, timeout_ms=session.config.timeout_ms
        )
        health = result.site_health
        payload = {
            "is_wordpress": result.is_wordpress,
            "wp_version": result.wp_version,
            "site_name": result.site_name,
            "site_description": result.site_description,
            "namespaces": result.namespaces,
            "rest_plugins": [
                {"name": p.name, "namespace": p.namespace, "category": p.category}
                for p in result.rest_plugins
            ],
            "site_health": (
                {
                    "php_version": health.php_version,
                    "mysql_version": health.mysql_version,
                    "server_software": health.server_software,
                    "object_cache": health.object_cache,
                    "active_plugins_count": health.active_plugins_count,
                }
                if health
                else None
            ),
            "error": result.error,
        }
        return json.dumps(payload, indent=2), []

    async def _record_observation(
        self, session: InvestigationSession, params: RecordObservationInput
    ) -> ToolResult:
        session.memory.add_observation(params.observation)
        logger.info(f"Observation recorded: {params.observation}")
        return (
            f'Observation recorded: "{params.observation}"',
            [streaming.observation(params.observation)],
        )

    async def _form_hypothesis(
        self, session: InvestigationSession, params: FormHypothesisInput
    ) -> ToolResult:
        session.memory.add_hypothesis(params.hypothesis)
        logger.info(f"Hypothesis formed: {params.hypothesis}")
        return (
            f'Hypothesis recorded: "{params.hypothesis}". '
            "You can now test this with test_cache_behavior or fetch_page.",
            [streaming.hypothesis(params.hypothesis)],
        )

    async def _complete_analysis(
        self, session: InvestigationSession, params: CompleteAnalysisInput
    ) -> ToolResult:
        session.complete(
            FinalAnalysis(
                summary=params.summary,
                recommendations=list(params.recommendations),
                confidence=params.confidence,
                areas_needing_more_investigation=params.areas_needing_more_investigation,
            )
        )
        logger.info("Analysis completed")
        return COMPLETION_MESSAGE, [
            streaming.complete(params.summary, list(params.recommendations), params.confidence)
        ]
