from __future__ import annotations

from cacheprobe.models.investigation import AgentSummary, ExperimentResult, InvestigationMemory
from cacheprobe.services.report import format_report


def test_format_report_lists_findings():
    memory = InvestigationMemory.seeded("https://example.com")
    memory.add_observation("Cart is excluded from cache")
    summary = AgentSummary(
        pages_analyzed=3,
        cache_working=True,
        detected_plugins=["WP Rocket"],
        detected_cdns=["Cloudflare"],
        conflicts=[],
        experiments=[
            ExperimentResult(
                name="with_cookie",
                hypothesis="cookies bypass cache",
                method="Testing if cookies bypass cache",
                result="First request: MISS (120ms), Second: MISS (118ms)",
            )
        ],
        final_analysis="Page caching works through Cloudflare",
        recommendations=["Enable Brotli", "Raise max-age"],
        confidence="high",
    )

    report = format_report(summary, memory, iterations=3)

    assert "Cache working: YES" in report
    assert "Plugins: WP Rocket" in report
    assert "- with_cookie: First request: MISS (120ms)" in report
    assert "1. Enable Brotli" in report
    assert "2. Raise max-age" in report
    assert "- Cart is excluded from cache" in report
    assert "[!] Conflicts Detected" not in report
    assert report.endswith("Completed in 3 iterations")
