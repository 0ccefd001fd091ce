"""Decision oracle adapters for the Anthropic and OpenRouter APIs."""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from cacheprobe.config import settings
from cacheprobe.services import logger as log_service


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class TextBlock:
    type: str
    text: str


@dataclass
class ToolUseBlock:
    type: str
    id: str
    name: str
    input: dict[str, Any]


@dataclass
class MessageResponse:
    content: list[Any]
    usage: Usage = field(default_factory=Usage)
    stop_reason: str = "end_turn"  # tool_use | end_turn | max_tokens


class DecisionOracle(Protocol):
    """Anything that picks the next action given the conversation so far."""

    model: str

    async def decide(
        self,
        *,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> MessageResponse: ...


def _block_field(block: Any, name: str) -> Any:
    if isinstance(block, dict):
        return block.get(name)
    return getattr(block, name, None)


class AnthropicOracle:
    """Oracle backed by the Anthropic Messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        max_tokens: int | None = None,
        client: Any | None = None,
    ):
        self.model = model or settings.anthropic_model
        self.max_tokens = max_tokens or settings.oracle_max_tokens
        if client is None:
            import anthropic

            client = anthropic.AsyncAnthropic(api_key=api_key)
        self.client = client

    @staticmethod
    def _from_anthropic_response(response: Any) -> MessageResponse:
        content: list[Any] = []
        for block in response.content:
            btype = _block_field(block, "type")
            if btype == "text":
                content.append(TextBlock(type="text", text=_block_field(block, "text") or ""))
            elif btype == "tool_use":
                content.append(
                    ToolUseBlock(
                        type="tool_use",
                        id=_block_field(block, "id"),
                        name=_block_field(block, "name"),
                        input=_block_field(block, "input"),
                    )
                )

        usage = getattr(response, "usage", None)
        return MessageResponse(
            content=content,
            usage=Usage(
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
            ),
            stop_reason=getattr(response, "stop_reason", None) or "end_turn",
        )

    async def decide(
        self,
        *,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> MessageResponse:
        t0 = time.monotonic()
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                tools=tools,
                messages=messages,
            )
        except Exception as e:
            log_service.log_llm_call(
                model=self.model,
                caller=self.name,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e),
            )
            raise

        mapped = self._from_anthropic_response(response)
        log_service.log_llm_call(
            model=self.model,
            caller=self.name,
            input_tokens=mapped.usage.input_tokens,
            output_tokens=mapped.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return mapped


class OpenRouterMessagesAdapter:
    """Translates Anthropic-shaped conversations to the OpenAI chat format and back.

    The investigator stores every turn as plain dicts, so only dict blocks are
    handled on the way out.
    """

    FINISH_REASONS = {
        "tool_calls": "tool_use",
        "stop": "end_turn",
        "length": "max_tokens",
    }

    def __init__(self, openai_client: Any):
        self._client = openai_client

    @staticmethod
    def _assistant_message(blocks: list[dict[str, Any]]) -> dict[str, Any]:
        texts = [b["text"] for b in blocks if b.get("type") == "text" and b.get("text")]
        calls = [
            {
                "id": b["id"],
                "type": "function",
                "function": {"name": b["name"], "arguments": json.dumps(b.get("input") or {})},
            }
            for b in blocks
            if b.get("type") == "tool_use"
        ]
        message: dict[str, Any] = {"role": "assistant", "content": "\n".join(texts) or None}
        if calls:
            message["tool_calls"] = calls
        return message

    @staticmethod
    def _tool_messages(blocks: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {"role": "tool", "tool_call_id": b.get("tool_use_id", ""), "content": str(b.get("content", ""))}
            for b in blocks
            if b.get("type") == "tool_result"
        ]

    def _to_openai_messages(self, system: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = [{"role": "system", "content": system}]
        for message in messages:
            role, content = message["role"], message["content"]
            if isinstance(content, str):
                converted.append({"role": role, "content": content})
            elif role == "assistant":
                converted.append(self._assistant_message(content))
            else:
                converted.extend(self._tool_messages(content))
        return converted

    @staticmethod
    def _to_openai_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("input_schema") or {"type": "object", "properties": {}},
                },
            }
            for tool in tools
        ]

    @staticmethod
    def _parse_arguments(raw: str | None) -> dict[str, Any]:
        try:
            parsed = json.loads(raw or "{}")
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def _from_openai_response(self, response: Any) -> MessageResponse:
        choice = response.choices[0]
        message = choice.message

        content: list[Any] = []
        if getattr(message, "content", None):
            content.append(TextBlock(type="text", text=message.content))
        for call in getattr(message, "tool_calls", None) or []:
            content.append(
                ToolUseBlock(
                    type="tool_use",
                    id=call.id,
                    name=call.function.name,
                    input=self._parse_arguments(call.function.arguments),
                )
            )

        usage = getattr(response, "usage", None)
        return MessageResponse(
            content=content,
            usage=Usage(
                input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
            stop_reason=self.FINISH_REASONS.get(getattr(choice, "finish_reason", None) or "stop", "end_turn"),
        )

    async def create(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> MessageResponse:
        request: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": 0,
            "messages": self._to_openai_messages(system, messages),
        }
        if tools:
            request["tools"] = self._to_openai_tools(tools)
            request["tool_choice"] = "auto"
        return self._from_openai_response(await self._client.chat.completions.create(**request))


class OpenRouterOracle:
    """Oracle backed by any OpenRouter model through the OpenAI-compatible SDK."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        max_tokens: int | None = None,
        client: Any | None = None,
    ):
        self.model = model or settings.openrouter_model
        self.max_tokens = max_tokens or settings.oracle_max_tokens
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI(
                api_key=api_key,
                base_url=settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1",
            )
        self.messages = OpenRouterMessagesAdapter(client)

    async def decide(
        self,
        *,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> MessageResponse:
        t0 = time.monotonic()
        try:
            response = await self.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=messages,
                tools=tools,
            )
        except Exception as e:
            log_service.log_llm_call(
                model=self.model,
                caller=self.name,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e),
            )
            raise

        log_service.log_llm_call(
            model=self.model,
            caller=self.name,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return response


def get_oracle(
    provider: str | None = None,
    api_key: str | None = None,
    model: str | None = None,
) -> DecisionOracle:
    """Build the configured oracle. Raises ValueError when no credential is available."""
    chosen = (provider or settings.oracle_provider).lower().strip()

    if chosen == "anthropic":
        key = api_key or settings.api_key_for(chosen)
        if not key:
            raise ValueError("ANTHROPIC_API_KEY required for autonomous investigation")
        return AnthropicOracle(api_key=key, model=model)

    if chosen == "openrouter":
        key = api_key or settings.api_key_for(chosen)
        if not key:
            raise ValueError("OPENROUTER_API_KEY required for autonomous investigation")
        return OpenRouterOracle(api_key=key, model=model)

    raise ValueError(f"Unsupported ORACLE_PROVIDER: {chosen}")
