from __future__ import annotations

from cacheprobe.models.investigation import AgentSummary, FinalAnalysis, InvestigationMemory

INCOMPLETE_ANALYSIS = "Analysis incomplete"


def iteration_limit_analysis() -> FinalAnalysis:
    """Fallback used when the oracle never called complete_analysis."""
    return FinalAnalysis(
        summary="Analysis incomplete - reached iteration limit",
        recommendations=["Run agent with more iterations for complete analysis"],
        confidence="low",
    )


def conflict_key(plugins: list[str], reason: str) -> str:
    return f"{' + '.join(plugins)}: {reason}"


def build_summary(
    memory: InvestigationMemory,
    final_analysis: FinalAnalysis | None,
) -> AgentSummary:
    pages = list(memory.analyzed_pages.values())
    plugins: list[str] = []
    cdns: list[str] = []
    conflicts: list[str] = []
    working_pages = 0

    for page in pages:
        analysis = page.analysis
        for plugin in analysis.plugins:
            if plugin.name not in plugins:
                plugins.append(plugin.name)
        for cdn in analysis.cdns:
            if cdn.name not in cdns:
                cdns.append(cdn.name)
        for conflict in analysis.conflicts:
            key = conflict_key(conflict.plugins, conflict.reason)
            if key not in conflicts:
                conflicts.append(key)
        if analysis.cache_status.working:
            working_pages += 1

    return AgentSummary(
        pages_analyzed=len(pages),
        cache_working=len(pages) > 0 and working_pages > len(pages) / 2,
        detected_plugins=plugins,
        detected_cdns=cdns,
        conflicts=conflicts,
        experiments=list(memory.experiments),
        final_analysis=final_analysis.summary if final_analysis else INCOMPLETE_ANALYSIS,
        recommendations=list(final_analysis.recommendations) if final_analysis else [],
        confidence=final_analysis.confidence if final_analysis else None,
        areas_needing_more_investigation=(
            list(final_analysis.areas_needing_more_investigation or []) if final_analysis else []
        ),
    )
