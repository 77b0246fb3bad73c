"""Search tool: regex search over file contents."""

from __future__ import annotations

import asyncio
import os
import re
from pathlib import Path
from typing import Any

from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.core.types import ToolName
from hearth.security.paths import check_path_access
from hearth.security.policy import SecurityContext

MAX_MATCHES = 100
MAX_LINE_LENGTH = 500
SKIP_DIRS = frozenset({".git", "node_modules", "__pycache__", ".venv", "venv"})


class SearchTool(Tool):
    @property
    def name(self) -> str:
        return ToolName.SEARCH.value

    @property
    def description(self) -> str:
        return (
            "Search file contents with a regular expression, like grep. "
            "Returns matching lines as path:line: text."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "description": "Regular expression"},
                "path": {"type": "string", "description": "File or directory (default: current directory)"},
                "include": {"type": "string", "description": "Glob filter on file names, e.g. *.py"},
                "ignore_case": {"type": "boolean"},
                "max_results": {"type": "integer", "description": f"Default and max {MAX_MATCHES}"},
            },
            "required": ["pattern"],
        }

    async def execute(
        self,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        pattern = params.get("pattern") or ""
        if not pattern:
            return ToolResult.fail("pattern is required")
        try:
            regex = re.compile(pattern, re.IGNORECASE if params.get("ignore_case") else 0)
        except re.error as e:
            return ToolResult.fail(f"invalid regular expression: {e}")

        root = check_path_access(params.get("path") or ".", security.execution)
        if not root.exists():
            return ToolResult.fail(f"'{root}' does not exist")
        limit = min(int(params.get("max_results") or MAX_MATCHES), MAX_MATCHES)

        matches = await asyncio.to_thread(grep, regex, root, params.get("include"), limit)
        if not matches:
            return ToolResult.ok(f"No matches for '{pattern}' in '{root}'.")
        lines = list(matches)
        if len(matches) >= limit:
            lines.append(f"... (stopped at {limit} matches; narrow the pattern or path)")
        return ToolResult.ok("\n".join(lines))


def _files(root: Path, include: str | None):
    if root.is_file():
        yield root
        return
    for dirpath, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
        for name in sorted(files):
            path = Path(dirpath) / name
            if include is None or path.match(include):
                yield path


def grep(regex: re.Pattern[str], root: Path, include: str | None = None, limit: int = MAX_MATCHES) -> list[str]:
    """Matching lines under *root* as ``path:lineno: text``."""
    results: list[str] = []
    for path in _files(root, include):
        try:
            with path.open("r", encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    if regex.search(line):
                        text = line.rstrip("\n")[:MAX_LINE_LENGTH]
                        results.append(f"{path}:{lineno}: {text}")
                        if len(results) >= limit:
                            return results
        except (UnicodeDecodeError, OSError):
            continue
    return results
