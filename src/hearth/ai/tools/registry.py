"""Tool registry: registration, name resolution and guarded execution."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.ai.tools.truncation import MAX_BYTES, MAX_LINES, truncate_output
from hearth.core.types import ToolName
from hearth.exceptions import (
    ToolDeniedError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolRegistrationError,
)
from hearth.log import get_logger
from hearth.security.policy import SecurityContext, is_tool_allowed
from hearth.storage.models import ToolCall

if TYPE_CHECKING:
    from hearth.config import TruncationConfig

logger = get_logger(__name__)

_TOOL_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
_KNOWN_TOOLS = frozenset(t.value for t in ToolName)


@dataclass
class ToolResolution:
    """Outcome of looking up a tool name."""

    original_name: str
    tool: Optional[Tool] = None
    repaired: bool = False
    suggestions: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.tool is not None


def similarity(query: str, candidate: str) -> float:
    """Score how close *candidate* is to *query*, 0 to 100."""
    q = query.lower()
    c = candidate.lower()
    if q == c:
        return 100.0
    if c.startswith(q) or q.startswith(c):
        return 80.0
    if q in c or c in q:
        return 60.0
    matches = sum(1 for a, b in zip(q, c) if a == b)
    longest = max(len(q), len(c))
    return (matches / longest) * 40 if longest else 0.0


class ToolRegistry:
    """Registry of available tools, owned by the orchestrator that uses it."""

    def __init__(self, truncation: TruncationConfig | None = None):
        self._tools: dict[str, Tool] = {}
        self._max_lines = truncation.max_lines if truncation else MAX_LINES
        self._max_bytes = truncation.max_bytes if truncation else MAX_BYTES

    def register(self, tool: Tool) -> None:
        name = tool.name
        if not _TOOL_NAME_PATTERN.match(name):
            raise ToolRegistrationError(f"Invalid tool name {name!r}")
        if name in self._tools:
            raise ToolRegistrationError(f"Tool {name!r} is already registered")
        if not tool.description.strip():
            raise ToolRegistrationError(f"Tool {name!r} has no description")
        schema = tool.input_schema
        if not isinstance(schema, dict) or schema.get("type") != "object":
            raise ToolRegistrationError(f"Tool {name!r} input_schema must be a JSON object schema")
        if not isinstance(schema.get("properties", {}), dict):
            raise ToolRegistrationError(f"Tool {name!r} input_schema properties must be a mapping")

        self._tools[name] = tool
        logger.info("tool_registered", tool_name=name, builtin=name in _KNOWN_TOOLS)

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    @property
    def output_budget(self) -> tuple[int, int]:
        """The (max_lines, max_bytes) every successful result is bounded to."""
        return self._max_lines, self._max_bytes

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def definitions(self) -> list[dict[str, Any]]:
        return [t.to_definition() for t in self._tools.values()]

    def find_similar(self, name: str, max_results: int = 3) -> list[str]:
        scored = [(similarity(name, tool_name), tool_name) for tool_name in self._tools]
        scored = [item for item in scored if item[0] > 0]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [tool_name for _, tool_name in scored[:max_results]]

    def resolve(self, name: str) -> ToolResolution:
        """Exact lookup, then one lower-case repair, then suggestions."""
        tool = self._tools.get(name)
        if tool:
            return ToolResolution(original_name=name, tool=tool)

        lowered = name.strip().lower()
        if lowered != name:
            tool = self._tools.get(lowered)
            if tool:
                logger.info("tool_name_repaired", original=name, repaired=lowered)
                return ToolResolution(original_name=name, tool=tool, repaired=True)

        return ToolResolution(original_name=name, suggestions=self.find_similar(name))

    async def execute(
        self,
        call: ToolCall,
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        """Run one tool call. Never raises for tool-level failures."""
        try:
            tool = self._resolve_or_raise(call.name)
            if not is_tool_allowed(tool.name, security.tool_policy):
                raise ToolDeniedError(tool.name)
            params = self._parse_arguments(call.arguments)
            result = await self._invoke(tool, params, security, context)
        except ToolError as e:
            logger.warning("tool_call_failed", tool=call.name, call_id=call.id, error=str(e))
            return ToolResult.fail(str(e))

        return self._bound(result)

    def _resolve_or_raise(self, name: str) -> Tool:
        resolution = self.resolve(name)
        if resolution.tool is None:
            raise ToolNotFoundError(name, resolution.suggestions, self.names())
        return resolution.tool

    @staticmethod
    def _parse_arguments(arguments: str | dict[str, Any] | None) -> dict[str, Any]:
        if arguments is None or arguments == "":
            return {}
        if isinstance(arguments, dict):
            return arguments
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise ToolExecutionError(f"Invalid tool arguments (expected JSON object): {e}") from e
        if not isinstance(parsed, dict):
            raise ToolExecutionError("Invalid tool arguments (expected JSON object)")
        return parsed

    @staticmethod
    async def _invoke(
        tool: Tool,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        try:
            result = await tool.execute(params, security, context)
        except ToolError:
            raise
        except Exception as e:
            logger.error("tool_execution_error", tool=tool.name, error=str(e), exc_info=True)
            raise ToolExecutionError(f"Error executing tool {tool.name}: {e}") from e
        if not isinstance(result, ToolResult):
            result = ToolResult.ok(result)
        return result

    def _bound(self, result: ToolResult) -> ToolResult:
        if not result.success:
            return result
        text = result.to_text()
        bounded = truncate_output(text, max_lines=self._max_lines, max_bytes=self._max_bytes)
        if bounded.truncated:
            return ToolResult(success=True, result=bounded.content, truncated=True)
        return result
