"""Terminal tool: run a shell command and capture its output."""

from __future__ import annotations

import asyncio
import shlex
from typing import Any, Optional

from hearth.ai.events import ToolStream
from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.ai.tools.truncation import truncate_output
from hearth.core.types import ToolName
from hearth.log import get_logger
from hearth.security.paths import check_path_access
from hearth.security.policy import SecurityContext

logger = get_logger(__name__)

MAX_TIMEOUT = 300


async def _pump(reader: asyncio.StreamReader, parts: list[str], stream: Optional[ToolStream]) -> None:
    while line := await reader.readline():
        text = line.decode("utf-8", errors="replace")
        parts.append(text)
        if stream:
            await stream.write(text)


class TerminalTool(Tool):
    """Runs shell commands with a timeout. Output streams to the event sink
    line by line while the command runs."""

    @property
    def name(self) -> str:
        return ToolName.TERMINAL.value

    @property
    def description(self) -> str:
        return (
            "Run a shell command and return its stdout, stderr and exit code. "
            "Long output keeps the last lines."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Shell command to run"},
                "args": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Arguments appended to the command, shell-quoted",
                },
                "cwd": {"type": "string", "description": "Working directory"},
                "timeout": {
                    "type": "integer",
                    "description": f"Timeout in seconds (max {MAX_TIMEOUT})",
                },
            },
            "required": ["command"],
        }

    async def execute(
        self,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        command = (params.get("command") or "").strip()
        if not command:
            return ToolResult.fail("command is required")
        args = params.get("args") or []
        if args:
            command = f"{command} {' '.join(shlex.quote(str(a)) for a in args)}"

        execution = security.execution
        timeout = min(int(params.get("timeout") or execution.timeout), MAX_TIMEOUT)
        cwd = params.get("cwd")
        if cwd:
            cwd = str(check_path_access(cwd, execution))

        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
        stdout: list[str] = []
        stderr: list[str] = []
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _pump(process.stdout, stdout, context.stream),
                    _pump(process.stderr, stderr, context.stream),
                    process.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("terminal_command_timeout", timeout=timeout)
            return ToolResult.fail(f"command timed out after {timeout} seconds")

        sections = []
        if stdout:
            sections.append("STDOUT:\n" + "".join(stdout).rstrip("\n"))
        if stderr:
            sections.append("STDERR:\n" + "".join(stderr).rstrip("\n"))
        sections.append(f"Exit code: {process.returncode}")
        output = "\n\n".join(sections)

        bounded = truncate_output(output, max_bytes=execution.max_output, direction="tail")
        return ToolResult(success=True, result=bounded.content, truncated=bounded.truncated)
