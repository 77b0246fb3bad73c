"""Bound tool output to a line and byte budget."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

MAX_LINES = 2000
MAX_BYTES = 50 * 1024

TRUNCATION_MARKER = "[hearth:output-truncated]"

_HINT = (
    f"{TRUNCATION_MARKER} Output truncated ({{removed}} {{unit}} removed) to fit within context limits.\n"
    "\n"
    "To access more content:\n"
    "- Use the search tool to look for specific patterns\n"
    "- Use the filesystem tool's read action with offset/limit to read specific sections\n"
    "- Check a file's size first with the filesystem info action"
)


# Extra room a truncation notice adds around the kept preview.
_NOTICE_LINES = _HINT.count("\n") + 4
_NOTICE_BYTES = len(_HINT.encode("utf-8")) + 64


@dataclass(frozen=True)
class TruncateResult:
    content: str
    truncated: bool


def is_truncated(text: str) -> bool:
    return TRUNCATION_MARKER in text


def truncate_output(
    text: str,
    max_lines: int = MAX_LINES,
    max_bytes: int = MAX_BYTES,
    direction: Literal["head", "tail"] = "head",
) -> TruncateResult:
    """Keep the head (or tail) of *text* within both budgets.

    Output this function already truncated to the same budget is returned
    unchanged. Text that carries the marker but is still over budget, such as
    several truncated results joined together, is truncated again.
    """
    lines = text.split("\n")
    total_bytes = len(text.encode("utf-8"))
    if len(lines) <= max_lines and total_bytes <= max_bytes:
        return TruncateResult(content=text, truncated=False)
    if (
        is_truncated(text)
        and len(lines) <= max_lines + _NOTICE_LINES
        and total_bytes <= max_bytes + _NOTICE_BYTES
    ):
        return TruncateResult(content=text, truncated=False)

    kept: list[str] = []
    used = 0
    hit_bytes = False
    ordered = lines if direction == "head" else reversed(lines)
    for line in ordered:
        if len(kept) >= max_lines:
            break
        size = len(line.encode("utf-8")) + (1 if kept else 0)
        if used + size > max_bytes:
            hit_bytes = True
            break
        kept.append(line)
        used += size
    if direction == "tail":
        kept.reverse()

    if hit_bytes:
        removed, unit = total_bytes - used, "bytes"
    else:
        removed, unit = len(lines) - len(kept), "lines"

    preview = "\n".join(kept)
    hint = _HINT.format(removed=removed, unit=unit)
    if direction == "head":
        content = f"{preview}\n\n...{removed} {unit} truncated...\n\n{hint}"
    else:
        content = f"...{removed} {unit} truncated...\n\n{hint}\n\n{preview}"
    return TruncateResult(content=content, truncated=True)
