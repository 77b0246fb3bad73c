"""Best-effort progress events for a running turn."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from hearth.log import get_logger

logger = get_logger(__name__)

LIFECYCLE_START = "lifecycle.start"
LIFECYCLE_END = "lifecycle.end"
LIFECYCLE_ERROR = "lifecycle.error"
TOOL_CALL = "tool.call"
TOOL_RESULT = "tool.result"
TOOL_OUTPUT = "tool.output"


@dataclass(frozen=True)
class StreamEvent:
    type: str
    run_id: str
    conversation_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


StreamSink = Callable[[StreamEvent], Union[None, Awaitable[None]]]


class EventEmitter:
    """Sends events to an optional sink in order. A failing sink is logged
    and ignored; it never aborts the turn."""

    def __init__(self, sink: Optional[StreamSink], run_id: str, conversation_id: str):
        self._sink = sink
        self.run_id = run_id
        self.conversation_id = conversation_id

    async def emit(self, event_type: str, **data: Any) -> None:
        if self._sink is None:
            return
        event = StreamEvent(
            type=event_type,
            run_id=self.run_id,
            conversation_id=self.conversation_id,
            data=data,
        )
        try:
            outcome = self._sink(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning("stream_sink_failed", event_type=event_type, error=str(e))

    async def lifecycle_start(self, message: str) -> None:
        await self.emit(LIFECYCLE_START, message=message)

    async def lifecycle_end(self, response: str, tokens_used: Optional[int] = None, outcome: str = "completed") -> None:
        await self.emit(LIFECYCLE_END, response=response, tokens_used=tokens_used, outcome=outcome)

    async def lifecycle_error(self, error: str) -> None:
        await self.emit(LIFECYCLE_ERROR, error=error)

    async def tool_call(self, tool: str, call_id: str, arguments: Any) -> None:
        await self.emit(TOOL_CALL, tool=tool, call_id=call_id, arguments=arguments)

    async def tool_result(self, tool: str, call_id: str, success: bool, content: str) -> None:
        await self.emit(TOOL_RESULT, tool=tool, call_id=call_id, success=success, content=content)

    def tool_stream(self, tool: str, call_id: str) -> ToolStream:
        return ToolStream(self, tool, call_id)


class ToolStream:
    """Lets a running tool push partial output (e.g. terminal lines)."""

    def __init__(self, emitter: EventEmitter, tool: str, call_id: str):
        self._emitter = emitter
        self._tool = tool
        self._call_id = call_id

    async def write(self, chunk: str) -> None:
        await self._emitter.emit(TOOL_OUTPUT, tool=self._tool, call_id=self._call_id, chunk=chunk)
