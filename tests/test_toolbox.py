from __future__ import annotations

import json

import pytest

from cacheprobe.agents.toolbox import COMPLETION_MESSAGE, ToolName, Toolbox
from cacheprobe.models.events import EventType
from fakes import BASE_URL


def test_definitions_cover_every_tool(toolbox):
    names = [definition["name"] for definition in toolbox.definitions()]

    assert sorted(names) == sorted(name.value for name in ToolName)


def test_cache_behavior_schema_advertises_test_types(toolbox):
    definition = next(d for d in toolbox.definitions() if d["name"] == "test_cache_behavior")
    test_type = definition["input_schema"]["properties"]["test_type"]

    assert "post_request" in test_type["enum"]
    assert "bypass_header" in test_type["enum"]
    assert sorted(definition["input_schema"]["required"]) == ["hypothesis", "test_type", "url"]


def test_complete_analysis_schema_marks_required_fields(toolbox):
    definition = next(d for d in toolbox.definitions() if d["name"] == "complete_analysis")

    assert definition["input_schema"]["required"] == ["summary", "recommendations", "confidence"]


def test_toolbox_rejects_registry_with_missing_handler(web):
    class IncompleteToolbox(Toolbox):
        def _build_specs(self):
            return [spec for spec in super()._build_specs() if spec.name != ToolName.DNS_LOOKUP]

    with pytest.raises(RuntimeError, match="dns_lookup"):
        IncompleteToolbox(collaborators=web.collaborators())


@pytest.mark.asyncio
async def test_fetch_page_records_page_and_links(toolbox, session, web):
    result, events = await toolbox.dispatch(session, "fetch_page", {"url": f"{BASE_URL}/"})

    payload = json.loads(result)
    assert payload["status_code"] == 200
    assert payload["is_wordpress"] is True
    assert payload["cache_status"]["working"] is True
    assert payload["cache_status"]["header"] == "x-cache"
    assert payload["timing"] == {"ttfb_first": 200, "ttfb_second": 50, "improvement": 75.0}
    assert payload["discovered_links"] == [f"{BASE_URL}/about", f"{BASE_URL}/blog"]

    assert list(session.memory.analyzed_pages) == [BASE_URL]
    assert f"{BASE_URL}/about" in session.memory.discovered_urls
    assert web.probe_calls == [f"{BASE_URL}/"]
    assert [e.event for e in events] == [EventType.TOOL_USE, EventType.PAGE_ANALYZED]


@pytest.mark.asyncio
async def test_fetch_page_refuses_other_domains_without_network(toolbox, session, web):
    result, _ = await toolbox.dispatch(session, "fetch_page", {"url": "https://other.com/page"})

    assert result == f"Cannot fetch https://other.com/page - different domain than {BASE_URL}"
    assert web.fetch_calls == []
    assert web.probe_calls == []
    assert session.memory.analyzed_pages == {}


@pytest.mark.asyncio
async def test_fetch_page_rejects_invalid_url(toolbox, session, web):
    result, _ = await toolbox.dispatch(session, "fetch_page", {"url": "not a url"})

    assert result == "Invalid URL: not a url"
    assert web.fetch_calls == []


@pytest.mark.asyncio
async def test_fetch_page_reports_fetch_failure(toolbox, session, web):
    web.failing.add(f"{BASE_URL}/down")

    result, _ = await toolbox.dispatch(session, "fetch_page", {"url": f"{BASE_URL}/down"})

    assert result == f"Failed to fetch {BASE_URL}/down: Connection refused"
    assert session.memory.analyzed_pages == {}
    assert web.probe_calls == []


@pytest.mark.asyncio
async def test_refetch_replaces_page_entry(toolbox, session):
    await toolbox.dispatch(session, "fetch_page", {"url": f"{BASE_URL}/"})
    await toolbox.dispatch(session, "fetch_page", {"url": BASE_URL})

    assert len(session.memory.analyzed_pages) == 1


@pytest.mark.asyncio
async def test_malformed_input_returns_text(toolbox, session, web):
    result, events = await toolbox.dispatch(session, "fetch_page", {})

    assert result.startswith("Invalid input for fetch_page: url:")
    assert web.fetch_calls == []
    assert [e.event for e in events] == [EventType.TOOL_USE]


@pytest.mark.asyncio
async def test_non_object_input_returns_text(toolbox, session):
    result, _ = await toolbox.dispatch(session, "record_observation", "just a string")

    assert result.startswith("Invalid input for record_observation:")
    assert session.memory.observations == []


@pytest.mark.asyncio
async def test_unknown_tool_returns_text(toolbox, session):
    result, events = await toolbox.dispatch(session, "launch_rockets", {"target": "moon"})

    assert result == "Unknown tool: launch_rockets"
    assert events[0].data == {"name": "launch_rockets", "input": {"target": "moon"}}


@pytest.mark.asyncio
@pytest.mark.parametrize("test_type", ["teleport", "post_request"])
async def test_unknown_test_type_makes_no_requests(toolbox, session, web, test_type):
    result, _ = await toolbox.dispatch(
        session,
        "test_cache_behavior",
        {"url": f"{BASE_URL}/", "test_type": test_type, "hypothesis": "n/a"},
    )

    assert result == f"Unknown test type: {test_type}"
    assert web.fetch_calls == []
    assert session.memory.experiments == []


@pytest.mark.asyncio
async def test_bypass_header_experiment(toolbox, session, web):
    web.header_queue = [{"x-cache": "MISS"}, {"x-cache": "MISS"}]

    result, events = await toolbox.dispatch(
        session,
        "test_cache_behavior",
        {"url": f"{BASE_URL}/", "test_type": "bypass_header", "hypothesis": "no-cache is honored"},
    )

    payload = json.loads(result)
    assert payload["interpretation"]["cache_respected_bypass"] is True
    assert payload["results"]["first_request"]["cache_hit"] is False
    assert payload["results"]["second_request"]["cache_headers"] == {"x-cache": "MISS"}
    assert [headers for _, headers in web.fetch_calls] == [
        {"Cache-Control": "no-cache", "Pragma": "no-cache"},
        {"Cache-Control": "no-cache", "Pragma": "no-cache"},
    ]

    experiment = session.memory.experiments[0]
    assert experiment.name == "bypass_header"
    assert experiment.hypothesis == "no-cache is honored"
    assert experiment.result == "First request: MISS (100ms), Second: MISS (100ms)"
    assert events[-1].event == EventType.EXPERIMENT_COMPLETE


@pytest.mark.asyncio
async def test_query_string_experiment_busts_cache_key(toolbox, session, web):
    web.header_queue = [{"x-cache": "MISS"}, {"x-cache": "HIT"}]

    result, _ = await toolbox.dispatch(
        session,
        "test_cache_behavior",
        {"url": f"{BASE_URL}/?p=1", "test_type": "query_string", "hypothesis": "query strings are cached"},
    )

    payload = json.loads(result)
    assert payload["interpretation"]["query_strings_cached"] is True
    first_url, _ = web.fetch_calls[0]
    assert first_url.startswith(f"{BASE_URL}/?p=1&cache_bust=")


@pytest.mark.asyncio
async def test_dns_lookup_returns_resolution(toolbox, session):
    result, _ = await toolbox.dispatch(session, "dns_lookup", {"url": BASE_URL})

    payload = json.loads(result)
    assert payload["detected"] == ["Cloudflare"]
    assert payload["addresses"] == ["203.0.113.10"]


@pytest.mark.asyncio
async def test_handler_failure_becomes_error_text(toolbox, session, web):
    web.dns_error = RuntimeError("resolver down")

    result, _ = await toolbox.dispatch(session, "dns_lookup", {"url": BASE_URL})

    assert result == "Error executing dns_lookup: resolver down"


@pytest.mark.asyncio
async def test_check_wordpress_api(toolbox, session, web):
    result, _ = await toolbox.dispatch(session, "check_wordpress_api", {"url": BASE_URL})

    payload = json.loads(result)
    assert payload["is_wordpress"] is True
    assert payload["wp_version"] == "6.4.2"
    assert payload["site_health"] is None
    assert web.wp_calls == [BASE_URL]


@pytest.mark.asyncio
async def test_observation_and_hypothesis_are_logged(toolbox, session):
    obs, obs_events = await toolbox.dispatch(
        session, "record_observation", {"observation": "Cart page bypasses cache"}
    )
    hyp, _ = await toolbox.dispatch(
        session, "form_hypothesis", {"hypothesis": "Cookies disable caching"}
    )

    assert obs == 'Observation recorded: "Cart page bypasses cache"'
    assert hyp.startswith('Hypothesis recorded: "Cookies disable caching".')
    assert session.memory.observations == ["Cart page bypasses cache"]
    assert session.memory.hypotheses == ["Cookies disable caching"]
    assert obs_events[-1].data == {"observation": "Cart page bypasses cache"}


@pytest.mark.asyncio
async def test_complete_analysis_sets_final_analysis(toolbox, session):
    result, events = await toolbox.dispatch(
        session,
        "complete_analysis",
        {
            "summary": "Cache works",
            "recommendations": ["Enable Brotli"],
            "confidence": "medium",
            "areas_needing_more_investigation": ["Checkout flow"],
        },
    )

    assert result == COMPLETION_MESSAGE
    assert session.completed is True
    assert session.final_analysis.confidence == "medium"
    assert session.final_analysis.areas_needing_more_investigation == ["Checkout flow"]
    assert events[-1].event == EventType.COMPLETE


@pytest.mark.asyncio
async def test_complete_analysis_rejects_unknown_confidence(toolbox, session):
    result, _ = await toolbox.dispatch(
        session,
        "complete_analysis",
        {"summary": "x", "recommendations": [], "confidence": "certain"},
    )

    assert result.startswith("Invalid input for complete_analysis: confidence:")
    assert session.completed is False


def test_build_variant_mobile_user_agent():
    url, headers, description = Toolbox.build_variant(f"{BASE_URL}/", "mobile_ua")

    assert url == f"{BASE_URL}/"
    assert "iPhone" in headers["User-Agent"]
    assert "mobile" in description


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("test_type", "header", "expected_value", "queue", "flag", "flag_value"),
    [
        ("with_cookie", "Cookie", "wordpress_test_cookie=", [{"x-cache": "MISS"}, {"x-cache": "MISS"}],
         "cookies_bypass_cache", True),
        ("with_cookie", "Cookie", "wordpress_test_cookie=", [{"x-cache": "MISS"}, {"x-cache": "HIT"}],
         "cookies_bypass_cache", False),
        ("vary_encoding", "Accept-Encoding", "identity", [{"x-cache": "MISS"}, {"x-cache": "HIT"}],
         "cookies_bypass_cache", False),
    ],
)
async def test_header_variant_experiments(
    toolbox, session, web, test_type, header, expected_value, queue, flag, flag_value
):
    web.header_queue = list(queue)

    result, events = await toolbox.dispatch(
        session,
        "test_cache_behavior",
        {"url": f"{BASE_URL}/", "test_type": test_type, "hypothesis": "variant changes caching"},
    )

    payload = json.loads(result)
    assert payload["interpretation"][flag] is flag_value
    assert len(web.fetch_calls) == 2
    for url, headers in web.fetch_calls:
        assert url == f"{BASE_URL}/"
        assert headers[header].startswith(expected_value)
    if test_type == "with_cookie":
        stamp = web.fetch_calls[0][1]["Cookie"].split("=", 1)[1]
        assert stamp.isdigit()

    second = "HIT" if queue[1]["x-cache"] == "HIT" else "MISS"
    experiment = session.memory.experiments[0]
    assert experiment.name == test_type
    assert experiment.hypothesis == "variant changes caching"
    assert experiment.conclusion == ""
    assert experiment.result == f"First request: MISS (100ms), Second: {second} (100ms)"
    assert events[-1].data["experiment"]["name"] == test_type
