"""Tests for hearth.ai.orchestrator.TurnOrchestrator."""

import asyncio

import pytest
import pytest_asyncio

from hearth.ai.client import LLMClient, LLMResponse
from hearth.ai.events import LIFECYCLE_END, LIFECYCLE_ERROR, LIFECYCLE_START, TOOL_CALL, TOOL_RESULT
from hearth.ai.memory import MemoryRetriever
from hearth.ai.orchestrator import (
    ROUND_LIMIT_NOTICE,
    ChannelMetadata,
    RunOutcome,
    RunParams,
    TurnOrchestrator,
)
from hearth.config import AgentConfig
from hearth.core.types import MessageRole
from hearth.exceptions import ConversationNotFoundError, ModelCallError
from hearth.storage.models import ToolCall


# --------------------------------------------------------------------------- #
# Helpers                                                                      #
# --------------------------------------------------------------------------- #

def make_orchestrator(llm, registry, sessions, memory=None, **agent_kwargs):
    agent = AgentConfig(id="main", identity="You are a test agent.", **agent_kwargs)
    return TurnOrchestrator(agent=agent, llm=llm, tool_registry=registry, session_manager=sessions, memory=memory)


def tool_round(*calls):
    return LLMResponse(content="", tool_calls=list(calls), input_tokens=10, output_tokens=5)


class StaticMemory(MemoryRetriever):
    def __init__(self, text):
        self.text = text

    async def retrieve(self, agent_id, conversation_id, query):
        return self.text


class BrokenMemory(MemoryRetriever):
    async def retrieve(self, agent_id, conversation_id, query):
        raise RuntimeError("index offline")


class OverlapCountingLLM(LLMClient):
    """Records how many chat calls overlap."""

    def __init__(self):
        self.active = 0
        self.max_active = 0

    @property
    def model_name(self):
        return "overlap-counter"

    async def chat(self, messages, tools=None, temperature=None):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0.05)
        self.active -= 1
        return LLMResponse(content="ok")


@pytest_asyncio.fixture
async def conversation(sessions):
    return await sessions.get_or_create("main")


def params(conversation, security, message="hello", **kwargs):
    return RunParams(conversation_id=conversation.id, message=message, security_context=security, **kwargs)


# --------------------------------------------------------------------------- #
# Plain turns                                                                  #
# --------------------------------------------------------------------------- #

async def test_plain_response(scripted_llm, registry, sessions, conversation, security):
    llm = scripted_llm([LLMResponse(content="hi there", input_tokens=3, output_tokens=4)])
    orchestrator = make_orchestrator(llm, registry, sessions)

    result = await orchestrator.run(params(conversation, security))

    assert result.response == "hi there"
    assert result.outcome is RunOutcome.COMPLETED
    assert result.rounds == 0
    assert result.tokens_used == 7
    history = await sessions.history(conversation.id)
    assert [(m.role, m.content) for m in history] == [
        (MessageRole.USER, "hello"),
        (MessageRole.ASSISTANT, "hi there"),
    ]
    assert {m.run_id for m in history} == {result.run_id}


async def test_prompt_contains_identity_tools_and_history(scripted_llm, registry, sessions, conversation, security):
    llm = scripted_llm([LLMResponse(content="first"), LLMResponse(content="second")])
    orchestrator = make_orchestrator(llm, registry, sessions, temperature=0.2)

    await orchestrator.run(params(conversation, security, message="one"))
    await orchestrator.run(params(conversation, security, message="two"))

    call = llm.calls[1]
    system = call["messages"][0]
    assert system["role"] == "system"
    assert system["content"].startswith("You are a test agent.")
    assert "1. echo: Echo the text parameter back" in system["content"]
    assert [m["content"] for m in call["messages"][1:]] == ["one", "first", "two"]
    assert [t["name"] for t in call["tools"]] == ["echo", "boom", "sleepy", "big"]
    assert call["temperature"] == 0.2


async def test_temperature_override(scripted_llm, registry, sessions, conversation, security):
    llm = scripted_llm()
    orchestrator = make_orchestrator(llm, registry, sessions)
    await orchestrator.run(params(conversation, security, temperature=0.0))
    assert llm.calls[0]["temperature"] == 0.0


async def test_history_limit_applies(scripted_llm, registry, sessions, conversation, security):
    llm = scripted_llm()
    orchestrator = make_orchestrator(llm, registry, sessions, history_limit=2)
    for text in ("a", "b", "c"):
        await orchestrator.run(params(conversation, security, message=text))
    # system prompt, two history messages, the new user message
    assert len(llm.calls[-1]["messages"]) == 4
    assert llm.calls[-1]["messages"][-1]["content"] == "c"


async def test_memory_inserted_before_user_message(scripted_llm, registry, sessions, conversation, security):
    llm = scripted_llm()
    orchestrator = make_orchestrator(llm, registry, sessions, memory=StaticMemory("remember: teal"))
    await orchestrator.run(params(conversation, security))
    messages = llm.calls[0]["messages"]
    assert messages[-2] == {"role": "system", "content": "remember: teal"}
    assert messages[-1] == {"role": "user", "content": "hello"}


async def test_memory_failure_is_ignored(scripted_llm, registry, sessions, conversation, security):
    orchestrator = make_orchestrator(scripted_llm(), registry, sessions, memory=BrokenMemory())
    result = await orchestrator.run(params(conversation, security))
    assert result.response == "done"


async def test_unknown_conversation_raises(scripted_llm, registry, sessions, security):
    orchestrator = make_orchestrator(scripted_llm(), registry, sessions)
    with pytest.raises(ConversationNotFoundError):
        await orchestrator.run(RunParams(conversation_id="missing", message="hi", security_context=security))


# --------------------------------------------------------------------------- #
# Tool loop                                                                    #
# --------------------------------------------------------------------------- #

async def test_tool_calls_each_get_one_result_in_order(scripted_llm, registry, sessions, conversation, security):
    llm = scripted_llm([
        tool_round(ToolCall("c1", "echo", {"text": "hi"}), ToolCall("c2", "nope", {})),
        LLMResponse(content="final answer"),
    ])
    orchestrator = make_orchestrator(llm, registry, sessions)

    result = await orchestrator.run(params(conversation, security))

    assert result.response == "final answer"
    assert result.rounds == 1
    assert len(llm.calls) == 2

    history = await sessions.history(conversation.id)
    assert [m.role for m in history] == [
        MessageRole.USER,
        MessageRole.ASSISTANT,
        MessageRole.TOOL,
        MessageRole.TOOL,
        MessageRole.ASSISTANT,
    ]
    assert [tc.id for tc in history[1].tool_calls] == ["c1", "c2"]
    assert history[2].tool_call_id == "c1"
    assert history[2].content == "echo: hi"
    assert history[3].tool_call_id == "c2"
    assert history[3].content.startswith('Error: Tool "nope" not found.')

    second = llm.calls[1]["messages"]
    assert second[-3]["tool_calls"][0]["name"] == "echo"
    assert [m["tool_call_id"] for m in second[-2:]] == ["c1", "c2"]


async def test_failing_tool_does_not_abort_turn(scripted_llm, registry, sessions, conversation, security):
    llm = scripted_llm([tool_round(ToolCall("c1", "boom", {})), LLMResponse(content="recovered")])
    orchestrator = make_orchestrator(llm, registry, sessions)

    result = await orchestrator.run(params(conversation, security))

    assert result.response == "recovered"
    tool_message = (await sessions.history(conversation.id))[2]
    assert tool_message.content == "Error: Error executing tool boom: kaboom"


async def test_denied_tool_reported_to_model(scripted_llm, registry, sessions, conversation, make_security):
    llm = scripted_llm([tool_round(ToolCall("c1", "echo", {})), LLMResponse(content="ok")])
    orchestrator = make_orchestrator(llm, registry, sessions)
    security = make_security(conversation_id=conversation.id, deny={"echo"})

    await orchestrator.run(params(conversation, security))

    assert "not allowed" in llm.calls[1]["messages"][-1]["content"]


async def test_duplicate_call_ids_are_made_unique(scripted_llm, registry, sessions, conversation, security):
    llm = scripted_llm([
        tool_round(ToolCall("dup", "echo", {"text": "a"}), ToolCall("dup", "echo", {"text": "b"})),
        LLMResponse(content="ok"),
    ])
    orchestrator = make_orchestrator(llm, registry, sessions)

    await orchestrator.run(params(conversation, security))

    history = await sessions.history(conversation.id)
    ids = [tc.id for tc in history[1].tool_calls]
    assert ids[0] == "dup"
    assert ids[1] != "dup"
    assert [history[2].tool_call_id, history[3].tool_call_id] == ids


async def test_round_limit(scripted_llm, registry, sessions, conversation, security):
    llm = scripted_llm([tool_round(ToolCall(f"c{i}", "echo", {})) for i in range(5)])
    orchestrator = make_orchestrator(llm, registry, sessions, max_rounds=2)

    result = await orchestrator.run(params(conversation, security))

    assert result.outcome is RunOutcome.ROUND_LIMIT_EXCEEDED
    assert result.rounds == 2
    assert result.response == ROUND_LIMIT_NOTICE
    assert len(llm.calls) == 3
    history = await sessions.history(conversation.id)
    assert history[-1].role is MessageRole.SYSTEM
    assert "limit 2" in history[-1].content
    # every persisted call has its result
    call_ids = [tc.id for m in history for tc in m.tool_calls]
    result_ids = [m.tool_call_id for m in history if m.role is MessageRole.TOOL]
    assert call_ids == result_ids == ["c0", "c1"]


# --------------------------------------------------------------------------- #
# Failures and events                                                          #
# --------------------------------------------------------------------------- #

async def test_model_failure_raises_and_keeps_user_message(scripted_llm, registry, sessions, conversation, security):
    events = []
    llm = scripted_llm([RuntimeError("upstream 500")])
    orchestrator = make_orchestrator(llm, registry, sessions)

    with pytest.raises(ModelCallError, match="upstream 500"):
        await orchestrator.run(params(conversation, security, stream=events.append))

    history = await sessions.history(conversation.id)
    assert [(m.role, m.content) for m in history] == [(MessageRole.USER, "hello")]
    assert [e.type for e in events] == [LIFECYCLE_START, LIFECYCLE_ERROR]


async def test_event_sequence(scripted_llm, registry, sessions, conversation, security):
    events = []
    llm = scripted_llm([tool_round(ToolCall("c1", "echo", {"text": "x"})), LLMResponse(content="done")])
    orchestrator = make_orchestrator(llm, registry, sessions)

    result = await orchestrator.run(params(conversation, security, stream=events.append))

    assert [e.type for e in events] == [LIFECYCLE_START, TOOL_CALL, TOOL_RESULT, LIFECYCLE_END]
    assert {e.run_id for e in events} == {result.run_id}
    assert events[2].data["content"] == "echo: x"
    assert events[-1].data["outcome"] == "completed"


async def test_async_sink_supported(scripted_llm, registry, sessions, conversation, security):
    seen = []

    async def sink(event):
        seen.append(event.type)

    await make_orchestrator(scripted_llm(), registry, sessions).run(params(conversation, security, stream=sink))
    assert seen == [LIFECYCLE_START, LIFECYCLE_END]


async def test_failing_sink_does_not_abort(scripted_llm, registry, sessions, conversation, security):
    def sink(event):
        raise RuntimeError("client went away")

    llm = scripted_llm([tool_round(ToolCall("c1", "echo", {})), LLMResponse(content="still fine")])
    result = await make_orchestrator(llm, registry, sessions).run(params(conversation, security, stream=sink))
    assert result.response == "still fine"


async def test_channel_metadata_updates_delivery(scripted_llm, registry, sessions, conversation, security):
    orchestrator = make_orchestrator(scripted_llm(), registry, sessions)
    await orchestrator.run(
        params(conversation, security, channel_metadata=ChannelMetadata(channel="telegram", to="42"))
    )
    assert await sessions.resolve_delivery_target(conversation.id, "telegram") == "42"


# --------------------------------------------------------------------------- #
# Concurrency                                                                  #
# --------------------------------------------------------------------------- #

async def test_same_conversation_turns_are_serialized(registry, sessions, conversation, security):
    llm = OverlapCountingLLM()
    orchestrator = make_orchestrator(llm, registry, sessions)

    await asyncio.gather(
        orchestrator.run(params(conversation, security, message="first")),
        orchestrator.run(params(conversation, security, message="second")),
    )

    assert llm.max_active == 1
    roles = [m.role for m in await sessions.history(conversation.id)]
    assert roles == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT]


async def test_different_conversations_run_concurrently(registry, sessions, make_security):
    llm = OverlapCountingLLM()
    orchestrator = make_orchestrator(llm, registry, sessions)
    one = await sessions.get_or_create("main", "group", "one")
    two = await sessions.get_or_create("main", "group", "two")

    await asyncio.gather(
        orchestrator.run(params(one, make_security(conversation_id=one.id))),
        orchestrator.run(params(two, make_security(conversation_id=two.id))),
    )

    assert llm.max_active == 2
