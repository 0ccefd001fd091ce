from __future__ import annotations

from cacheprobe.models.investigation import AgentSummary, InvestigationMemory

RULE = "=" * 63


def format_report(summary: AgentSummary, memory: InvestigationMemory, iterations: int) -> str:
    """Plain-text report for terminal output."""
    lines: list[str] = [
        "",
        RULE,
        "              AUTONOMOUS AGENT ANALYSIS REPORT",
        RULE,
        "",
        "[*] Investigation Summary",
        f"   Pages analyzed: {summary.pages_analyzed}",
        f"   Cache working: {'YES' if summary.cache_working else 'NO'}",
        f"   Experiments run: {len(summary.experiments)}",
    ]
    if summary.confidence:
        lines.append(f"   Confidence: {summary.confidence}")
    lines.append("")

    if summary.detected_plugins or summary.detected_cdns:
        lines.append("[*] Detected Stack")
        if summary.detected_plugins:
            lines.append(f"   Plugins: {', '.join(summary.detected_plugins)}")
        if summary.detected_cdns:
            lines.append(f"   CDNs: {', '.join(summary.detected_cdns)}")
        lines.append("")

    if summary.conflicts:
        lines.append("[!] Conflicts Detected")
        lines.extend(f"   - {conflict}" for conflict in summary.conflicts)
        lines.append("")

    if summary.experiments:
        lines.append("[~] Experiments Conducted")
        lines.extend(f"   - {exp.name}: {exp.result}" for exp in summary.experiments)
        lines.append("")

    lines.append("[*] Agent Analysis")
    lines.append(f"   {summary.final_analysis}")
    lines.append("")

    if summary.recommendations:
        lines.append("[+] Recommendations")
        lines.extend(f"   {i}. {rec}" for i, rec in enumerate(summary.recommendations, 1))
        lines.append("")

    if summary.areas_needing_more_investigation:
        lines.append("[?] Needs More Investigation")
        lines.extend(f"   - {area}" for area in summary.areas_needing_more_investigation)
        lines.append("")

    lines.append(RULE)

    if memory.observations:
        lines.append("")
        lines.append("[*] Agent Observations")
        lines.extend(f"   - {obs}" for obs in memory.observations)
        lines.append("")

    lines.append(f"Completed in {iterations} iterations")
    return "\n".join(lines)
