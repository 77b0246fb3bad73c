"""Memory search tool: full-text search over the agent's memory files."""

from __future__ import annotations

from typing import Any

from hearth.ai.memory import MemoryFileIndex
from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.core.types import ToolName
from hearth.security.policy import SecurityContext

DEFAULT_MAX_RESULTS = 6
MAX_RESULTS_LIMIT = 50
DEFAULT_MIN_SCORE = 0.35


class MemorySearchTool(Tool):
    def __init__(self, index: MemoryFileIndex):
        self._index = index

    @property
    def name(self) -> str:
        return ToolName.MEMORY_SEARCH.value

    @property
    def description(self) -> str:
        return (
            "Search MEMORY.md and memory/*.md for notes relevant to a query. Use before "
            "answering questions about prior work, decisions, preferences or people. "
            "Returns top snippets with path and line numbers."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "What to look for"},
                "maxResults": {
                    "type": "integer",
                    "description": f"Maximum snippets to return (default {DEFAULT_MAX_RESULTS})",
                },
                "minScore": {
                    "type": "number",
                    "description": (
                        f"Minimum score 0-1 relative to the best match (default {DEFAULT_MIN_SCORE})"
                    ),
                },
            },
            "required": ["query"],
        }

    async def execute(
        self,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        query = params.get("query")
        if not isinstance(query, str) or not query.strip():
            return ToolResult.fail("Query parameter is required and must be a string")

        max_results = params.get("maxResults", DEFAULT_MAX_RESULTS)
        if isinstance(max_results, bool) or not isinstance(max_results, int) or max_results < 1:
            return ToolResult.fail("maxResults must be a positive integer")
        min_score = params.get("minScore", DEFAULT_MIN_SCORE)
        if isinstance(min_score, bool) or not isinstance(min_score, (int, float)) or not 0 <= min_score <= 1:
            return ToolResult.fail("minScore must be a number between 0 and 1")

        matches = await self._index.search(
            context.agent_id, query, max_results=min(max_results, MAX_RESULTS_LIMIT), min_score=float(min_score)
        )
        total_files, total_chunks = await self._index.totals(context.agent_id)
        return ToolResult.ok({
            "results": [
                {
                    "path": m.path,
                    "startLine": m.start_line,
                    "endLine": m.end_line,
                    "score": m.score,
                    "snippet": m.snippet,
                }
                for m in matches
            ],
            "root": str(self._index.root_for(context.agent_id)),
            "totalFiles": total_files,
            "totalChunks": total_chunks,
        })
