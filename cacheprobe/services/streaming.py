from __future__ import annotations

from typing import Any

from cacheprobe.models.events import EventType, SSEEvent


def start(base_url: str, max_iterations: int) -> SSEEvent:
    return SSEEvent(
        event=EventType.START,
        data={"base_url": base_url, "max_iterations": max_iterations},
    )


def log(message: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.LOG, data={"message": message, **kwargs})


def thinking(text: str) -> SSEEvent:
    return SSEEvent(event=EventType.THINKING, data={"text": text})


def tool_use(name: str, tool_input: Any) -> SSEEvent:
    return SSEEvent(event=EventType.TOOL_USE, data={"name": name, "input": tool_input})


def page_analyzed(url: str, cache_working: bool, **kwargs: Any) -> SSEEvent:
    return SSEEvent(
        event=EventType.PAGE_ANALYZED,
        data={"url": url, "cache_working": cache_working, **kwargs},
    )


def experiment_complete(experiment: dict[str, Any]) -> SSEEvent:
    return SSEEvent(event=EventType.EXPERIMENT_COMPLETE, data={"experiment": experiment})


def observation(text: str) -> SSEEvent:
    return SSEEvent(event=EventType.OBSERVATION, data={"observation": text})


def hypothesis(text: str) -> SSEEvent:
    return SSEEvent(event=EventType.HYPOTHESIS, data={"hypothesis": text})


def complete(summary: str, recommendations: list[str], confidence: str) -> SSEEvent:
    return SSEEvent(
        event=EventType.COMPLETE,
        data={
            "summary": summary,
            "recommendations": recommendations,
            "confidence": confidence,
        },
    )


def investigation_finished(
    state: str,
    iterations: int,
    summary: dict[str, Any],
    runtime_ms: int | None = None,
) -> SSEEvent:
    data: dict[str, Any] = {
        "state": state,
        "iterations": iterations,
        "summary": summary,
    }
    if runtime_ms is not None:
        data["runtime_ms"] = runtime_ms
    return SSEEvent(event=EventType.INVESTIGATION_FINISHED, data=data)


def error(message: str, iteration: int | None = None) -> SSEEvent:
    data: dict[str, Any] = {"message": message}
    if iteration is not None:
        data["iteration"] = iteration
    return SSEEvent(event=EventType.ERROR, data=data)
