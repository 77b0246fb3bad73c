"""Assemble the prompt for a turn: system prompt, history, memories, user message."""

from __future__ import annotations

from typing import Any

from hearth.ai.tools.base import Tool
from hearth.core.types import MessageRole
from hearth.storage.models import Message


def build_system_prompt(identity: str, tools: list[Tool]) -> str:
    """Identity text followed by an enumerated list of the tools."""
    if not tools:
        return identity

    lines = [identity.rstrip(), "", "--- Available Tools ---"]
    for index, tool in enumerate(tools, start=1):
        lines.append(f"{index}. {tool.name}: {tool.description}")
    lines.append("")
    lines.append(
        "Call tools through the tool interface. When you have the final answer, "
        "respond with plain text and no tool calls."
    )
    return "\n".join(lines)


def message_to_dict(message: Message) -> dict[str, Any]:
    data: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.tool_calls:
        data["tool_calls"] = [tc.to_dict() for tc in message.tool_calls]
    if message.tool_call_id:
        data["tool_call_id"] = message.tool_call_id
    return data


def _trim_orphans(history: list[Message]) -> list[Message]:
    """Drop tool results at the start of a window whose call was cut off."""
    start = 0
    while start < len(history) and history[start].role == MessageRole.TOOL:
        start += 1
    return history[start:]


def build_messages(
    system_prompt: str,
    history: list[Message],
    user_message: str,
    memory_text: str = "",
) -> list[dict[str, Any]]:
    """Neutral message list for the model.

    *history* holds the turns that precede the new user message.
    """
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    messages.extend(message_to_dict(m) for m in _trim_orphans(history))
    if memory_text:
        messages.append({"role": "system", "content": memory_text})
    messages.append({"role": "user", "content": user_message})
    return messages
