"""Filesystem tool: list, read, inspect, find and write local files."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.core.types import ToolName
from hearth.security.paths import check_path_access
from hearth.security.policy import SecurityContext

MAX_READ_BYTES = 5 * 1024 * 1024
MAX_FIND_RESULTS = 50


class FileSystemTool(Tool):
    """Local file access, confined by the execution paths of the security context."""

    @property
    def name(self) -> str:
        return ToolName.FILESYSTEM.value

    @property
    def description(self) -> str:
        return (
            "Work with local files. 'list' a directory, 'read' a text file (optionally "
            "from line offset with a line limit), 'info' for size and timestamps, "
            "'find' files by glob pattern, or 'write' content to a file."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["list", "read", "info", "find", "write"],
                },
                "path": {"type": "string", "description": "File or directory path"},
                "offset": {
                    "type": "integer",
                    "description": "First line to read, 1-based (read)",
                },
                "limit": {"type": "integer", "description": "Number of lines to read (read)"},
                "pattern": {"type": "string", "description": "Glob pattern (find)"},
                "max_depth": {
                    "type": "integer",
                    "description": "Maximum directory depth (find, default 3)",
                },
                "content": {"type": "string", "description": "Text to write (write)"},
                "append": {"type": "boolean", "description": "Append instead of overwrite (write)"},
            },
            "required": ["action", "path"],
        }

    async def execute(
        self,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        action = params.get("action", "list")
        path = check_path_access(params.get("path") or ".", security.execution)

        match action:
            case "list":
                return await asyncio.to_thread(_list_dir, path)
            case "read":
                return await asyncio.to_thread(
                    _read_file, path, int(params.get("offset") or 1), params.get("limit")
                )
            case "info":
                return await asyncio.to_thread(_file_info, path)
            case "find":
                return await asyncio.to_thread(
                    _find, path, params.get("pattern") or "*", int(params.get("max_depth") or 3)
                )
            case "write":
                if "content" not in params:
                    return ToolResult.fail("content is required for write action")
                return await asyncio.to_thread(
                    _write_file, path, str(params["content"]), bool(params.get("append", False))
                )
            case _:
                return ToolResult.fail(f"unknown action '{action}'")


def _list_dir(path: Path) -> ToolResult:
    if not path.is_dir():
        return ToolResult.fail(f"'{path}' is not a directory")
    entries = []
    for entry in sorted(path.iterdir()):
        if entry.is_dir():
            entries.append(f"  [DIR]  {entry.name}/")
        else:
            entries.append(f"  [FILE] {entry.name} ({format_size(entry.stat().st_size)})")
    if not entries:
        return ToolResult.ok(f"Directory '{path}' is empty.")
    return ToolResult.ok(f"Contents of {path}:\n" + "\n".join(entries))


def _read_file(path: Path, offset: int, limit: Any) -> ToolResult:
    if not path.is_file():
        return ToolResult.fail(f"'{path}' is not a file")
    size = path.stat().st_size
    if size > MAX_READ_BYTES:
        return ToolResult.fail(
            f"file is too large ({format_size(size)}); use search to find the relevant lines"
        )
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return ToolResult.fail(f"'{path}' is a binary file and cannot be read as text")

    if offset <= 1 and limit is None:
        return ToolResult.ok(text)

    lines = text.split("\n")
    start = max(offset, 1) - 1
    if start >= len(lines):
        return ToolResult.fail(f"offset {offset} is beyond the end of the file ({len(lines)} lines)")
    end = len(lines) if limit is None else min(start + int(limit), len(lines))
    body = "\n".join(lines[start:end])
    if end < len(lines):
        body += f"\n\n[Showing lines {start + 1}-{end} of {len(lines)}. Use offset={end + 1} to continue.]"
    return ToolResult.ok(body)


def _file_info(path: Path) -> ToolResult:
    if not path.exists():
        return ToolResult.fail(f"'{path}' does not exist")
    stat = path.stat()
    info: dict[str, Any] = {
        "path": str(path),
        "type": "directory" if path.is_dir() else "file",
        "size": format_size(stat.st_size),
        "bytes": stat.st_size,
        "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
        "permissions": oct(stat.st_mode & 0o777),
    }
    if path.is_file():
        with path.open("rb") as f:
            info["lines"] = sum(1 for _ in f)
    return ToolResult.ok(info)


def _find(path: Path, pattern: str, max_depth: int) -> ToolResult:
    if not path.is_dir():
        return ToolResult.fail(f"'{path}' is not a directory")
    results: list[str] = []
    for root, dirs, files in os.walk(path):
        root_path = Path(root)
        if len(root_path.relative_to(path).parts) >= max_depth:
            dirs.clear()
            continue
        dirs.sort()
        for name in sorted(files):
            if root_path.joinpath(name).match(pattern):
                results.append(str(root_path / name))
                if len(results) >= MAX_FIND_RESULTS:
                    results.append(f"... (stopped at {MAX_FIND_RESULTS} results)")
                    return ToolResult.ok("\n".join(results))
    if not results:
        return ToolResult.ok(f"No files matching '{pattern}' found in '{path}'.")
    return ToolResult.ok("\n".join(results))


def _write_file(path: Path, content: str, append: bool) -> ToolResult:
    if path.is_dir():
        return ToolResult.fail(f"'{path}' is a directory")
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a" if append else "w", encoding="utf-8") as f:
        f.write(content)
    verb = "Appended" if append else "Wrote"
    return ToolResult.ok(f"{verb} {len(content.encode('utf-8'))} bytes to {path}")


def format_size(size: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}TB"
