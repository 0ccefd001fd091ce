from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    START = "start"
    LOG = "log"
    THINKING = "thinking"
    TOOL_USE = "tool_use"
    PAGE_ANALYZED = "page_analyzed"
    EXPERIMENT_COMPLETE = "experiment_complete"
    OBSERVATION = "observation"
    HYPOTHESIS = "hypothesis"
    COMPLETE = "complete"
    INVESTIGATION_FINISHED = "investigation_finished"
    ERROR = "error"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)
