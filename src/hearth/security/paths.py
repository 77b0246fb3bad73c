"""Filesystem path guard for tools that touch the local disk."""

from __future__ import annotations

from pathlib import Path

from hearth.config import ExecutionConfig
from hearth.exceptions import ToolExecutionError


def _within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def check_path_access(path_str: str, execution: ExecutionConfig) -> Path:
    """Resolve *path_str* and check it against the allowed/blocked roots.

    An empty allow list permits every path that is not blocked.
    """
    path = Path(path_str).expanduser().resolve()
    for blocked in execution.blocked_paths:
        if _within(path, Path(blocked).expanduser().resolve()):
            raise ToolExecutionError(f"Access to '{path}' is blocked by the security policy")
    if execution.allowed_paths and not any(
        _within(path, Path(allowed).expanduser().resolve()) for allowed in execution.allowed_paths
    ):
        raise ToolExecutionError(f"Access to '{path}' is outside the allowed paths")
    return path
