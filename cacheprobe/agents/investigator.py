from __future__ import annotations

import time
from typing import Any, AsyncGenerator, Callable

from loguru import logger

from cacheprobe.agents.toolbox import Toolbox
from cacheprobe.llm_client import DecisionOracle, MessageResponse, get_oracle
from cacheprobe.models.events import SSEEvent
from cacheprobe.models.investigation import (
    AgentSummary,
    InvestigationConfig,
    InvestigationMemory,
    InvestigationSession,
    InvestigationState,
)
from cacheprobe.services import logger as log_service
from cacheprobe.services import streaming
from cacheprobe.services.prompt_store import render_prompt
from cacheprobe.services.summary import build_summary, iteration_limit_analysis


class CacheInvestigator:
    """Lets the oracle pick diagnostic actions until it completes or runs out of iterations.

    Flow:
      1. Seed the conversation with the target site
      2. Ask the oracle for its next turn
      3. Dispatch each tool call in order, one at a time
      4. Append the oracle turn and the tool results to the conversation
      5. Repeat until complete_analysis is called, the cap is hit, or the oracle fails

    ``investigate`` yields progress events as it goes. ``run`` drains it and
    returns the summary, so nothing depends on a consumer being attached.
    """

    name = "investigator"

    def __init__(
        self,
        config: InvestigationConfig,
        oracle: DecisionOracle | None = None,
        toolbox: Toolbox | None = None,
    ):
        self.config = config
        self.oracle = oracle or get_oracle(provider=config.provider, api_key=config.api_key)
        self.toolbox = toolbox or Toolbox()
        self.system_prompt = render_prompt("investigator.system_prompt")
        self.session = InvestigationSession.start(config)

    @property
    def memory(self) -> InvestigationMemory:
        return self.session.memory

    @property
    def iteration(self) -> int:
        return self.session.iteration

    @property
    def state(self) -> InvestigationState:
        return self.session.state

    @property
    def summary(self) -> AgentSummary:
        return build_summary(self.session.memory, self.session.final_analysis)

    async def investigate(self) -> AsyncGenerator[SSEEvent, None]:
        session = self.session
        if session.state != InvestigationState.INIT:
            raise RuntimeError("Investigation already started")

        t0 = time.monotonic()
        max_iterations = self.config.max_iterations
        logger.info(f"Investigating {self.config.base_url} (max {max_iterations} iterations)")
        yield streaming.start(self.config.base_url, max_iterations)

        session.conversation.append(
            {
                "role": "user",
                "content": render_prompt("investigator.initial_prompt", base_url=self.config.base_url),
            }
        )
        tools = self.toolbox.definitions()

        while not session.completed:
            if session.iteration >= max_iterations:
                session.state = InvestigationState.EXHAUSTED
                break

            session.iteration += 1
            session.state = InvestigationState.AWAITING_ORACLE
            message = f"Iteration {session.iteration}/{max_iterations}"
            logger.debug(message)
            yield streaming.log(message, iteration=session.iteration)

            try:
                response = await self.oracle.decide(
                    system=self.system_prompt,
                    tools=tools,
                    messages=list(session.conversation),
                )
            except Exception as e:
                session.state = InvestigationState.FAILED
                session.error = str(e) or e.__class__.__name__
                logger.error(f"Oracle call failed in iteration {session.iteration}: {e!r}")
                yield streaming.error(f"Oracle call failed: {session.error}", iteration=session.iteration)
                break

            session.state = InvestigationState.EXECUTING_TOOLS
            async for event in self._process_response(response):
                yield event

            if session.completed:
                session.state = InvestigationState.COMPLETED

        if session.state == InvestigationState.EXHAUSTED:
            logger.warning("Reached max iterations without completing analysis")
            session.final_analysis = iteration_limit_analysis()
            yield streaming.log("Reached max iterations without completing analysis")

        runtime_ms = int((time.monotonic() - t0) * 1000)
        log_service.log_event(
            "investigation_finished",
            f"Investigation of {self.config.base_url} ended in state {session.state.value}",
            iterations=session.iteration,
            runtime_ms=runtime_ms,
        )
        yield streaming.investigation_finished(
            state=session.state.value,
            iterations=session.iteration,
            summary=self.summary.to_dict(),
            runtime_ms=runtime_ms,
        )

    async def _process_response(self, response: MessageResponse) -> AsyncGenerator[SSEEvent, None]:
        session = self.session
        assistant_content: list[dict[str, Any]] = []
        tool_results: list[dict[str, Any]] = []

        for block in response.content:
            if block.type == "text":
                # The Messages API rejects empty text blocks on the next request.
                if not block.text:
                    continue
                assistant_content.append({"type": "text", "text": block.text})
                logger.debug(f"Agent thinking: {block.text}")
                yield streaming.thinking(block.text)

            elif block.type == "tool_use":
                assistant_content.append(
                    {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
                )
                # complete_analysis ends the turn; later calls are kept in history but not run
                if session.completed:
                    logger.warning(f"Skipping {block.name}: analysis already completed")
                    continue

                logger.info(f"Agent action: {block.name}")
                result, events = await self.toolbox.dispatch(session, block.name, block.input)
                for event in events:
                    yield event
                tool_results.append(
                    {"type": "tool_result", "tool_use_id": block.id, "content": result}
                )

        if not assistant_content:
            # Nothing to record; the next request repeats the current conversation.
            logger.warning("Oracle returned an empty turn")
            return
        session.conversation.append({"role": "assistant", "content": assistant_content})

        if tool_results:
            session.conversation.append({"role": "user", "content": tool_results})
        elif not session.completed:
            session.conversation.append(
                {"role": "user", "content": render_prompt("investigator.continue_prompt")}
            )

    async def run(self, on_event: Callable[[SSEEvent], None] | None = None) -> AgentSummary:
        """Run the whole investigation, optionally forwarding each event, and return the summary."""
        async for event in self.investigate():
            if on_event is None:
                continue
            try:
                on_event(event)
            except Exception as e:
                # Never break the investigation because a listener failed.
                logger.warning(f"Event listener failed on {event.event.value}: {e!r}")
        return self.summary
