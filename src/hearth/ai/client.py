"""Language-model capability: abstract client plus an Anthropic API backend."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from hearth.config import AnthropicConfig, LLMConfig
from hearth.log import get_logger
from hearth.storage.models import ToolCall

logger = get_logger(__name__)


@dataclass
class LLMResponse:
    """Unified response from any model backend."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    raw: Any = None  # Backend-specific raw response

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMClient(ABC):
    """Abstract base class for model backends.

    Messages use a provider-neutral shape::

        {"role": "system" | "user" | "assistant" | "tool",
         "content": str,
         "tool_calls": [{"id", "name", "arguments"}],   # assistant only
         "tool_call_id": str}                           # tool only
    """

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: Optional[float] = None,
    ) -> LLMResponse:
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...


class AnthropicClient(LLMClient):
    """Anthropic API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig, llm: LLMConfig):
        import anthropic

        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )
        self._model = llm.model
        self._max_tokens = llm.max_tokens

    @property
    def model_name(self) -> str:
        return self._model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: Optional[float] = None,
    ) -> LLMResponse:
        system, api_messages = to_anthropic_messages(messages)
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": api_messages,
        }
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature
        if tools:
            kwargs["tools"] = tools

        logger.debug("api_request", model=self._model, message_count=len(api_messages))
        response = await self._client.messages.create(**kwargs)
        logger.debug(
            "api_response",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )

        text_parts = [b.text for b in response.content if b.type == "text"]
        tool_calls = [
            ToolCall(id=b.id, name=b.name, arguments=dict(b.input))
            for b in response.content
            if b.type == "tool_use"
        ]
        return LLMResponse(
            content="\n".join(text_parts),
            tool_calls=tool_calls,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            raw=response,
        )


# The Messages API rejects empty text content.
EMPTY_REPLY_TEXT = "(no reply)"


def _tool_input(arguments: Any) -> dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    try:
        parsed = json.loads(arguments or "{}")
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_anthropic_messages(messages: list[dict[str, Any]]) -> tuple[str, list[dict[str, Any]]]:
    """Convert neutral messages into (system, Anthropic messages).

    System messages are folded into the system prompt. Consecutive tool
    results are grouped into one user message of tool_result blocks. An
    assistant message with no text and no tool calls is sent as
    EMPTY_REPLY_TEXT so user and assistant turns still alternate.
    """
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []
    i = 0

    while i < len(messages):
        msg = messages[i]
        role = msg.get("role")

        if role == "system":
            if msg.get("content"):
                system_parts.append(msg["content"])
            i += 1

        elif role == "assistant" and msg.get("tool_calls"):
            blocks: list[dict[str, Any]] = []
            if msg.get("content"):
                blocks.append({"type": "text", "text": msg["content"]})
            for tc in msg["tool_calls"]:
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": tc["id"],
                        "name": tc["name"],
                        "input": _tool_input(tc.get("arguments")),
                    }
                )
            converted.append({"role": "assistant", "content": blocks})
            i += 1

        elif role == "tool":
            result_blocks: list[dict[str, Any]] = []
            while i < len(messages) and messages[i].get("role") == "tool":
                result_blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": messages[i].get("tool_call_id") or f"tool_{i}",
                        "content": messages[i].get("content", ""),
                    }
                )
                i += 1
            converted.append({"role": "user", "content": result_blocks})

        elif role == "assistant" and not (msg.get("content") or "").strip():
            converted.append({"role": "assistant", "content": EMPTY_REPLY_TEXT})
            i += 1

        else:
            converted.append({"role": role, "content": msg.get("content", "")})
            i += 1

    return "\n\n".join(system_parts), converted
