"""Abstract tool interface shared by every model-callable capability."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from hearth.ai.events import ToolStream
    from hearth.security.policy import SecurityContext


@dataclass
class ToolResult:
    success: bool
    result: Any = None
    error: Optional[str] = None
    truncated: bool = False

    @classmethod
    def ok(cls, result: Any) -> ToolResult:
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: str) -> ToolResult:
        return cls(success=False, error=error)

    def to_text(self) -> str:
        """Render the result as the content of a tool-role message."""
        if not self.success:
            return f"Error: {self.error or 'tool failed'}"
        if isinstance(self.result, str):
            return self.result
        if self.result is None:
            return "OK"
        return json.dumps(self.result, indent=2, default=str, ensure_ascii=False)


@dataclass
class ToolExecutionContext:
    """Per-call context handed to a tool handler."""

    conversation_id: str
    agent_id: str
    run_id: str = ""
    stream: Optional[ToolStream] = None


class Tool(ABC):
    """Base class for all model-callable tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the model."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for the model."""
        ...

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema dict describing accepted parameters."""
        ...

    @abstractmethod
    async def execute(
        self,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        """Run the tool. Expected failures return ToolResult.fail; anything raised
        is caught by the registry and reported the same way."""
        ...

    def to_definition(self) -> dict[str, Any]:
        """Provider-neutral tool definition."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }
