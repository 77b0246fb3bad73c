"""Application wiring: builds every component and manages lifecycle."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from hearth.ai.client import AnthropicClient, LLMClient
from hearth.ai.events import StreamSink
from hearth.ai.memory import ConversationMemory, MemoryFileIndex
from hearth.ai.orchestrator import ChannelMetadata, RunParams, RunResult, TurnOrchestrator
from hearth.ai.tools.batch import BatchTool
from hearth.ai.tools.browser import BrowserTool
from hearth.ai.tools.calendar import CalendarTool
from hearth.ai.tools.channels import channel_tools
from hearth.ai.tools.filesystem import FileSystemTool
from hearth.ai.tools.memory_search import MemorySearchTool
from hearth.ai.tools.registry import ToolRegistry
from hearth.ai.tools.search import SearchTool
from hearth.ai.tools.terminal import TerminalTool
from hearth.channels.registry import ChannelRegistry
from hearth.config import AppConfig
from hearth.core.session import SessionManager
from hearth.core.types import ConversationType
from hearth.exceptions import ConfigError
from hearth.log import get_logger
from hearth.security.policy import resolve_security_context
from hearth.services.browser import BrowserService
from hearth.services.scheduler import CalendarService
from hearth.services.service_manager import ServiceManager
from hearth.storage.conversation_repo import ConversationRepository
from hearth.storage.database import Database
from hearth.storage.event_repo import EventRepository
from hearth.storage.memory_repo import MemoryRepository
from hearth.storage.session_repo import SessionRepository

logger = get_logger(__name__)


class HearthApp:
    """Top-level application object.

    Every collaborator is constructed here and handed to the components that
    need it; nothing is looked up through module globals.
    """

    def __init__(
        self,
        config: AppConfig,
        llm: Optional[LLMClient] = None,
        channels: Optional[ChannelRegistry] = None,
    ):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.conversation_repo = ConversationRepository(self.db)
        self.session_repo = SessionRepository(self.db)
        self.event_repo = EventRepository(self.db)
        self.memory_repo = MemoryRepository(self.db)
        self.session_manager = SessionManager(self.conversation_repo, self.session_repo)
        self.memory_index = MemoryFileIndex(
            self.memory_repo,
            Path(config.memory.dir) if config.memory.dir else Path(config.data_dir) / "memory",
            chunk_lines=config.memory.chunk_lines,
        )
        self.channels = channels or ChannelRegistry()
        self.llm = llm or self._create_llm()

        self.browser = BrowserService(config.services.browser, Path(config.data_dir) / "screenshots")
        self.calendar = CalendarService(
            config.scheduler,
            self.event_repo,
            self.session_manager,
            config.security,
            default_agent_id=config.default_agent_id,
            runner_lookup=self.orchestrator_for,
        )
        self.service_manager = ServiceManager([self.calendar, self.browser])

        self.tool_registry = self._build_tool_registry()
        self.orchestrators: dict[str, TurnOrchestrator] = {
            agent.id: TurnOrchestrator(
                agent=agent,
                llm=self.llm,
                tool_registry=self.tool_registry,
                session_manager=self.session_manager,
                memory=ConversationMemory(self.conversation_repo, limit=agent.memory_limit),
            )
            for agent in config.agents
        }

    def _create_llm(self) -> LLMClient:
        match self.config.llm.backend:
            case "anthropic":
                if not self.config.anthropic:
                    raise ConfigError("llm.backend is 'anthropic' but there is no 'anthropic' section in config")
                return AnthropicClient(self.config.anthropic, self.config.llm)
            case _:
                raise ConfigError(f"Unknown LLM backend: {self.config.llm.backend}")

    def _build_tool_registry(self) -> ToolRegistry:
        registry = ToolRegistry(self.config.truncation)
        registry.register(TerminalTool())
        registry.register(FileSystemTool())
        registry.register(SearchTool())
        if self.config.memory.enabled:
            registry.register(MemorySearchTool(self.memory_index))
        if self.browser.enabled:
            registry.register(BrowserTool(self.browser))
        registry.register(CalendarTool(self.calendar))
        registry.register(BatchTool(registry))
        for tool in channel_tools(self.channels, self.session_manager):
            registry.register(tool)
        return registry

    def orchestrator_for(self, agent_id: str) -> Optional[TurnOrchestrator]:
        return self.orchestrators.get(agent_id)

    async def start(self) -> None:
        await self.db.initialize()
        await self.service_manager.start_all()
        logger.info(
            "hearth_started",
            agents=list(self.orchestrators),
            tools=self.tool_registry.names(),
            model=self.llm.model_name,
        )

    async def stop(self) -> None:
        await self.service_manager.stop_all()
        await self.db.close()
        logger.info("hearth_stopped")

    async def handle_message(
        self,
        message: str,
        agent_id: Optional[str] = None,
        conversation_type: ConversationType | str = ConversationType.MAIN,
        label: Optional[str] = None,
        channel_metadata: Optional[ChannelMetadata] = None,
        stream: Optional[StreamSink] = None,
    ) -> RunResult:
        """Entry point for transports: route *message* to its conversation and run a turn."""
        agent_id = agent_id or self.config.default_agent_id
        orchestrator = self.orchestrator_for(agent_id)
        if orchestrator is None:
            raise ConfigError(f"Unknown agent: {agent_id}")

        conversation = await self.session_manager.get_or_create(agent_id, conversation_type, label)
        security = resolve_security_context(
            self.config.security, conversation.id, conversation.type, agent_id
        )
        return await orchestrator.run(
            RunParams(
                conversation_id=conversation.id,
                message=message,
                security_context=security,
                channel_metadata=channel_metadata,
                stream=stream,
            )
        )
