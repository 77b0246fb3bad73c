"""Batch tool: run several independent tool calls concurrently."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.ai.tools.truncation import truncate_output
from hearth.core.types import ToolName
from hearth.security.policy import SecurityContext
from hearth.storage.models import ToolCall

if TYPE_CHECKING:
    from hearth.ai.tools.registry import ToolRegistry

MAX_BATCH_CALLS = 25


class BatchTool(Tool):
    """Fans a list of calls out through the registry. Each sub-call passes the
    same security gate and truncation as a direct call, then is cut to its
    share of the output budget so the combined result stays within it."""

    def __init__(self, registry: ToolRegistry):
        self._registry = registry

    @property
    def name(self) -> str:
        return ToolName.BATCH.value

    @property
    def description(self) -> str:
        return (
            f"Run up to {MAX_BATCH_CALLS} independent tool calls in parallel. "
            "Results come back in the order the calls were given. Batch calls cannot be nested."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "calls": {
                    "type": "array",
                    "minItems": 1,
                    "maxItems": MAX_BATCH_CALLS,
                    "items": {
                        "type": "object",
                        "properties": {
                            "tool": {"type": "string"},
                            "params": {"type": "object"},
                        },
                        "required": ["tool"],
                    },
                },
            },
            "required": ["calls"],
        }

    async def execute(
        self,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        calls = params.get("calls")
        if not isinstance(calls, list) or not calls:
            return ToolResult.fail("calls must be a non-empty list")
        if len(calls) > MAX_BATCH_CALLS:
            return ToolResult.fail(f"at most {MAX_BATCH_CALLS} calls per batch, got {len(calls)}")

        share = self._share(len(calls))
        outcomes = await asyncio.gather(
            *(self._run_one(index, entry, security, context, share) for index, entry in enumerate(calls))
        )
        succeeded = sum(1 for item in outcomes if item["success"])
        return ToolResult.ok(
            {
                "summary": f"{succeeded}/{len(outcomes)} calls succeeded",
                "results": list(outcomes),
            }
        )

    async def _run_one(
        self,
        index: int,
        entry: Any,
        security: SecurityContext,
        context: ToolExecutionContext,
        share: tuple[int, int],
    ) -> dict[str, Any]:
        if not isinstance(entry, dict) or not entry.get("tool"):
            return {"index": index, "tool": None, "success": False, "output": "Error: each call needs a 'tool'"}
        tool_name = str(entry["tool"])
        if tool_name.strip().lower() == ToolName.BATCH:
            return {
                "index": index,
                "tool": tool_name,
                "success": False,
                "output": "Error: batch calls cannot be nested",
            }

        call = ToolCall(
            id=f"{context.run_id or 'batch'}-{index}",
            name=tool_name,
            arguments=entry.get("params") or {},
        )
        result = await self._registry.execute(call, security, context)
        return {
            "index": index,
            "tool": tool_name,
            "success": result.success,
            "output": truncate_output(result.to_text(), max_lines=share[0], max_bytes=share[1]).content,
        }

    def _share(self, count: int) -> tuple[int, int]:
        # Half the byte share leaves room for JSON escaping and per-entry notices.
        max_lines, max_bytes = self._registry.output_budget
        return max(1, max_lines // count), max(256, max_bytes // (2 * count))
