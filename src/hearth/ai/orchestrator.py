"""Turn orchestrator: drives one user message to a final response.

A turn persists the user message, then alternates model calls and tool
execution until the model answers without tool calls or the round limit is
reached. Each requested tool call gets exactly one tool-role message, in the
order the model asked for them.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Optional

from hearth.ai.client import LLMClient, LLMResponse
from hearth.ai.conversation import build_messages, build_system_prompt, message_to_dict
from hearth.ai.events import EventEmitter, StreamSink
from hearth.ai.memory import MemoryRetriever, NullMemory
from hearth.ai.tools.base import ToolExecutionContext
from hearth.ai.tools.registry import ToolRegistry
from hearth.config import AgentConfig
from hearth.core.session import SessionManager
from hearth.core.types import MessageRole
from hearth.exceptions import ModelCallError
from hearth.log import bound_context, get_logger
from hearth.security.policy import SecurityContext
from hearth.storage.models import Message, ToolCall

logger = get_logger(__name__)

ROUND_LIMIT_NOTICE = "[Tool round limit reached before the task was finished]"


class RunOutcome(StrEnum):
    COMPLETED = "completed"
    ROUND_LIMIT_EXCEEDED = "round_limit_exceeded"


@dataclass(frozen=True)
class ChannelMetadata:
    """Where an inbound message came from, for replying later."""

    channel: str
    to: str
    account_id: Optional[str] = None


@dataclass
class RunParams:
    conversation_id: str
    message: str
    security_context: SecurityContext
    temperature: Optional[float] = None
    channel_metadata: Optional[ChannelMetadata] = None
    stream: Optional[StreamSink] = None


@dataclass
class RunResult:
    run_id: str
    response: str
    tokens_used: Optional[int] = None
    rounds: int = 0
    outcome: RunOutcome = RunOutcome.COMPLETED


class TurnOrchestrator:
    """Runs turns for one agent."""

    def __init__(
        self,
        agent: AgentConfig,
        llm: LLMClient,
        tool_registry: ToolRegistry,
        session_manager: SessionManager,
        memory: MemoryRetriever | None = None,
    ):
        self._agent = agent
        self._llm = llm
        self._tools = tool_registry
        self._sessions = session_manager
        self._memory = memory or NullMemory()
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def agent_id(self) -> str:
        return self._agent.id

    @property
    def tool_registry(self) -> ToolRegistry:
        return self._tools

    async def run(self, params: RunParams) -> RunResult:
        """Run one turn. Turns for the same conversation run one at a time."""
        run_id = uuid.uuid4().hex
        with bound_context(run_id=run_id, conversation_id=params.conversation_id):
            async with self._locks[params.conversation_id]:
                return await self._run(params, run_id)

    async def _run(self, params: RunParams, run_id: str) -> RunResult:
        conversation_id = params.conversation_id
        await self._sessions.require(conversation_id)

        if params.channel_metadata:
            meta = params.channel_metadata
            await self._sessions.update_delivery_context(
                conversation_id, meta.channel, meta.to, meta.account_id
            )

        history = await self._sessions.history(conversation_id, limit=self._agent.history_limit)
        await self._sessions.append(
            conversation_id,
            Message(role=MessageRole.USER, content=params.message, run_id=run_id),
        )
        memory_text = await self._recall(conversation_id, params.message)

        system_prompt = build_system_prompt(self._agent.identity, self._tools.all_tools())
        messages = build_messages(system_prompt, history, params.message, memory_text)
        tool_defs = self._tools.definitions()
        temperature = params.temperature if params.temperature is not None else self._agent.temperature

        emitter = EventEmitter(params.stream, run_id, conversation_id)
        await emitter.lifecycle_start(params.message)
        logger.info("turn_started", agent_id=self.agent_id, history=len(history))

        tokens = 0
        rounds = 0
        while True:
            response = await self._call_model(messages, tool_defs, temperature, emitter)
            tokens += response.total_tokens

            if not response.tool_calls:
                await self._sessions.append(
                    conversation_id,
                    Message(role=MessageRole.ASSISTANT, content=response.content, run_id=run_id),
                )
                await emitter.lifecycle_end(response.content, tokens)
                logger.info("turn_completed", rounds=rounds, tokens=tokens)
                return RunResult(
                    run_id=run_id,
                    response=response.content,
                    tokens_used=tokens,
                    rounds=rounds,
                )

            if rounds >= self._agent.max_rounds:
                return await self._round_limit(conversation_id, run_id, response, tokens, rounds, emitter)

            calls = self._normalize_calls(response.tool_calls, run_id, rounds)
            assistant = Message(
                role=MessageRole.ASSISTANT,
                content=response.content,
                run_id=run_id,
                tool_calls=calls,
            )
            await self._sessions.append(conversation_id, assistant)
            messages.append(message_to_dict(assistant))

            for result_message in await self._execute_tools(calls, params.security_context, run_id, emitter):
                await self._sessions.append(conversation_id, result_message)
                messages.append(message_to_dict(result_message))
            rounds += 1

    async def _call_model(
        self,
        messages: list[dict[str, Any]],
        tool_defs: list[dict[str, Any]],
        temperature: float,
        emitter: EventEmitter,
    ) -> LLMResponse:
        try:
            return await self._llm.chat(messages, tools=tool_defs or None, temperature=temperature)
        except Exception as e:
            logger.error("model_call_failed", error=str(e), exc_info=True)
            await emitter.lifecycle_error(str(e))
            raise ModelCallError(f"Model call failed: {e}") from e

    async def _execute_tools(
        self,
        calls: list[ToolCall],
        security: SecurityContext,
        run_id: str,
        emitter: EventEmitter,
    ) -> list[Message]:
        results: list[Message] = []
        for call in calls:
            await emitter.tool_call(call.name, call.id, call.arguments)
            context = ToolExecutionContext(
                conversation_id=emitter.conversation_id,
                agent_id=self.agent_id,
                run_id=run_id,
                stream=emitter.tool_stream(call.name, call.id),
            )
            result = await self._tools.execute(call, security, context)
            content = result.to_text()
            await emitter.tool_result(call.name, call.id, result.success, content)
            logger.info("tool_executed", tool=call.name, call_id=call.id, success=result.success)
            results.append(
                Message(role=MessageRole.TOOL, content=content, run_id=run_id, tool_call_id=call.id)
            )
        return results

    async def _round_limit(
        self,
        conversation_id: str,
        run_id: str,
        response: LLMResponse,
        tokens: int,
        rounds: int,
        emitter: EventEmitter,
    ) -> RunResult:
        logger.warning("turn_round_limit_exceeded", rounds=rounds, max_rounds=self._agent.max_rounds)
        text = response.content or ROUND_LIMIT_NOTICE
        await self._sessions.append(
            conversation_id,
            Message(
                role=MessageRole.SYSTEM,
                content=f"Turn stopped after {rounds} tool rounds (limit {self._agent.max_rounds}).",
                run_id=run_id,
            ),
        )
        await emitter.lifecycle_end(text, tokens, outcome=RunOutcome.ROUND_LIMIT_EXCEEDED.value)
        return RunResult(
            run_id=run_id,
            response=text,
            tokens_used=tokens,
            rounds=rounds,
            outcome=RunOutcome.ROUND_LIMIT_EXCEEDED,
        )

    async def _recall(self, conversation_id: str, query: str) -> str:
        try:
            return await self._memory.retrieve(self.agent_id, conversation_id, query)
        except Exception as e:
            logger.warning("memory_recall_failed", error=str(e))
            return ""

    @staticmethod
    def _normalize_calls(calls: list[ToolCall], run_id: str, round_no: int) -> list[ToolCall]:
        """Give every call an id that is unique within the turn."""
        seen: set[str] = set()
        normalized = []
        for index, call in enumerate(calls):
            call_id = call.id
            if not call_id or call_id in seen:
                call_id = f"call_{run_id[:8]}_{round_no}_{index}"
                call = ToolCall(id=call_id, name=call.name, arguments=call.arguments)
            seen.add(call_id)
            normalized.append(call)
        return normalized
