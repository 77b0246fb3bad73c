"""Session manager: conversation identity, history and delivery context."""

from __future__ import annotations

import uuid
from typing import Optional

from hearth.core.types import ConversationType
from hearth.exceptions import ConversationNotFoundError, StorageError
from hearth.log import get_logger
from hearth.storage.conversation_repo import ConversationRepository
from hearth.storage.models import Conversation, Message, SessionStoreEntry
from hearth.storage.session_repo import SessionRepository

logger = get_logger(__name__)


def derive_session_key(
    agent_id: str,
    conversation_type: ConversationType | str,
    label: Optional[str] = None,
) -> str:
    """Stable lookup handle for the conversation of an (agent, type, label)."""
    key = f"agent:{agent_id}:{ConversationType(conversation_type).value}"
    normalized = (label or "").strip().lower()
    if normalized:
        key = f"{key}:{normalized}"
    return key


def _isolated_key(agent_id: str, conversation_id: str) -> str:
    return f"agent:{agent_id}:isolated:{conversation_id}"


class SessionManager:
    """Owns conversations and their session-store entries.

    Every mutation is written through to SQLite before returning.
    """

    def __init__(self, conversation_repo: ConversationRepository, session_repo: SessionRepository):
        self._conversations = conversation_repo
        self._sessions = session_repo

    @property
    def repo(self) -> ConversationRepository:
        return self._conversations

    async def get_or_create(
        self,
        agent_id: str,
        conversation_type: ConversationType | str = ConversationType.MAIN,
        label: Optional[str] = None,
    ) -> Conversation:
        """Get the conversation for (agent, type, label), creating it on first use.

        Concurrent first calls for the same key all return one conversation.
        """
        conversation_type = ConversationType(conversation_type)
        session_key = derive_session_key(agent_id, conversation_type, label)
        entry = await self._sessions.get(session_key)
        if entry is None:
            conversation = Conversation(
                id=uuid.uuid4().hex[:12],
                agent_id=agent_id,
                type=conversation_type,
                label=label or "",
            )
            entry = await self._sessions.claim(
                SessionStoreEntry(session_key=session_key, session_id=conversation.id, agent_id=agent_id),
                conversation,
            )
            if entry is None:
                logger.info(
                    "conversation_created",
                    agent_id=agent_id,
                    type=conversation_type.value,
                    session_key=session_key,
                    conversation_id=conversation.id,
                )
                return conversation

        existing = await self._conversations.get(entry.session_id)
        if existing is None:
            raise ConversationNotFoundError(entry.session_id)
        existing.delivery = entry.delivery
        return existing

    async def create_isolated(self, agent_id: str, label: str) -> Conversation:
        """Create a fresh conversation that never shadows the keyed ones."""
        conversation = Conversation(
            id=uuid.uuid4().hex[:12],
            agent_id=agent_id,
            type=ConversationType.MAIN,
            label=label,
        )
        entry = SessionStoreEntry(
            session_key=_isolated_key(agent_id, conversation.id),
            session_id=conversation.id,
            agent_id=agent_id,
        )
        if await self._sessions.claim(entry, conversation) is not None:
            raise StorageError(f"Session key {entry.session_key} is already taken")
        logger.info("conversation_isolated_created", agent_id=agent_id, conversation_id=conversation.id)
        return conversation

    async def get_by_session_id(self, conversation_id: str, with_messages: bool = False) -> Optional[Conversation]:
        conversation = await self._conversations.get(conversation_id)
        if conversation is None:
            return None
        entry = await self._entry_for(conversation)
        if entry:
            conversation.delivery = entry.delivery
        if with_messages:
            conversation.messages = await self._conversations.get_messages(conversation_id)
        return conversation

    async def require(self, conversation_id: str) -> Conversation:
        conversation = await self.get_by_session_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def list_conversations(self, agent_id: Optional[str] = None) -> list[Conversation]:
        return await self._conversations.list_conversations(agent_id)

    async def delete(self, conversation_id: str) -> bool:
        deleted = await self._conversations.delete(conversation_id)
        if deleted:
            logger.info("conversation_deleted", conversation_id=conversation_id)
        return deleted

    async def append(self, conversation_id: str, message: Message) -> Message:
        """Persist *message* at the end of the conversation."""
        if await self._conversations.get(conversation_id) is None:
            raise ConversationNotFoundError(conversation_id)
        await self._conversations.append(conversation_id, message)
        return message

    async def history(self, conversation_id: str, limit: Optional[int] = None) -> list[Message]:
        return await self._conversations.get_messages(conversation_id, limit)

    async def update_delivery_context(
        self,
        conversation_id: str,
        channel: str,
        to: str,
        account_id: Optional[str] = None,
    ) -> None:
        """Remember which channel/address the conversation was last used from."""
        conversation = await self.require(conversation_id)
        entry = await self._entry_for(conversation)
        session_key = entry.session_key if entry else derive_session_key(
            conversation.agent_id, conversation.type, conversation.label
        )
        await self._sessions.upsert_delivery(
            session_key=session_key,
            session_id=conversation.id,
            agent_id=conversation.agent_id,
            channel=channel,
            to=to,
            account_id=account_id,
        )
        logger.debug(
            "delivery_context_updated",
            conversation_id=conversation_id,
            channel=channel,
        )

    async def resolve_delivery_target(self, conversation_id: str, channel: str) -> Optional[str]:
        """Recipient address for *channel* in this conversation, if it came from there."""
        entry: Optional[SessionStoreEntry] = None
        conversation = await self._conversations.get(conversation_id)
        if conversation:
            key = derive_session_key(conversation.agent_id, conversation.type, conversation.label)
            entry = await self._sessions.get(key)
            if entry and entry.session_id != conversation_id:
                entry = None
        if entry is None:
            entry = next(
                (e for e in await self._sessions.all() if e.session_id == conversation_id),
                None,
            )
        if entry is None:
            return None
        if entry.last_channel == channel or (entry.last_channel is None and entry.origin_channel == channel):
            return entry.last_to
        return None

    async def _entry_for(self, conversation: Conversation) -> Optional[SessionStoreEntry]:
        key = derive_session_key(conversation.agent_id, conversation.type, conversation.label)
        entry = await self._sessions.get(key)
        if entry and entry.session_id == conversation.id:
            return entry
        return await self._sessions.find_by_session_id(conversation.id)
