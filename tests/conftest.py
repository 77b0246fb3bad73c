"""Shared fixtures for hearth tests."""

import asyncio
from typing import Any

import pytest
import pytest_asyncio

from hearth.ai.client import LLMClient, LLMResponse
from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.ai.tools.registry import ToolRegistry
from hearth.core.session import SessionManager
from hearth.security.policy import SecurityContext, ToolPolicy
from hearth.storage.conversation_repo import ConversationRepository
from hearth.storage.database import Database
from hearth.storage.event_repo import EventRepository
from hearth.storage.session_repo import SessionRepository


# --------------------------------------------------------------------------- #
# Fakes                                                                        #
# --------------------------------------------------------------------------- #

class ScriptedLLM(LLMClient):
    """Returns queued responses in order; an Exception in the queue is raised."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    @property
    def model_name(self) -> str:
        return "scripted"

    async def chat(self, messages, tools=None, temperature=None):
        self.calls.append(
            {"messages": [dict(m) for m in messages], "tools": tools, "temperature": temperature}
        )
        if not self.responses:
            return LLMResponse(content="done")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class _SimpleTool(Tool):
    tool_name = "simple"
    tool_description = "A test tool"

    @property
    def name(self):
        return self.tool_name

    @property
    def description(self):
        return self.tool_description

    @property
    def input_schema(self):
        return {"type": "object", "properties": {}}


class EchoTool(_SimpleTool):
    tool_name = "echo"
    tool_description = "Echo the text parameter back"

    async def execute(self, params, security, context):
        return ToolResult.ok(f"echo: {params.get('text', '')}")


class BoomTool(_SimpleTool):
    tool_name = "boom"
    tool_description = "Always raises"

    async def execute(self, params, security, context):
        raise RuntimeError("kaboom")


class SleepyTool(_SimpleTool):
    tool_name = "sleepy"
    tool_description = "Sleeps for delay seconds, then returns label"

    async def execute(self, params, security, context):
        await asyncio.sleep(params.get("delay", 0))
        return ToolResult.ok(params.get("label", ""))


class BigOutputTool(_SimpleTool):
    tool_name = "big"
    tool_description = "Returns many lines"

    async def execute(self, params, security, context):
        return ToolResult.ok("\n".join(f"line {i}" for i in range(params.get("lines", 100))))


TEST_TOOLS = frozenset({"echo", "boom", "sleepy", "big", "batch", "terminal", "filesystem", "search", "calendar", "telegram", "discord"})


# --------------------------------------------------------------------------- #
# Storage fixtures                                                             #
# --------------------------------------------------------------------------- #

@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "hearth_test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def conversation_repo(db):
    return ConversationRepository(db)


@pytest.fixture
def session_repo(db):
    return SessionRepository(db)


@pytest.fixture
def event_repo(db):
    return EventRepository(db)


@pytest.fixture
def sessions(conversation_repo, session_repo):
    return SessionManager(conversation_repo, session_repo)


# --------------------------------------------------------------------------- #
# Tool fixtures                                                                #
# --------------------------------------------------------------------------- #

@pytest.fixture
def make_security():
    def _make(conversation_id="conv-1", agent_id="main", allow=TEST_TOOLS, deny=frozenset(), **kwargs):
        return SecurityContext(
            agent_id=agent_id,
            conversation_id=conversation_id,
            tool_policy=ToolPolicy(allow=frozenset(allow) if allow is not None else None, deny=frozenset(deny)),
            **kwargs,
        )

    return _make


@pytest.fixture
def security(make_security):
    return make_security()


@pytest.fixture
def exec_context():
    return ToolExecutionContext(conversation_id="conv-1", agent_id="main", run_id="run-1")


@pytest.fixture
def registry():
    reg = ToolRegistry()
    for tool in (EchoTool(), BoomTool(), SleepyTool(), BigOutputTool()):
        reg.register(tool)
    return reg


@pytest.fixture
def scripted_llm():
    return ScriptedLLM
