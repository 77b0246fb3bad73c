"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from hearth.core.types import ConversationType, MessageRole


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: str | dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        return cls(id=data["id"], name=data["name"], arguments=data.get("arguments", {}))


@dataclass
class Message:
    role: MessageRole
    content: str
    run_id: Optional[str] = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class DeliveryContext:
    """Where a conversation was last reached from."""

    channel: Optional[str] = None
    to: Optional[str] = None
    origin_channel: Optional[str] = None
    origin_account: Optional[str] = None


@dataclass
class Conversation:
    id: str
    agent_id: str
    type: ConversationType
    label: str = ""
    messages: list[Message] = field(default_factory=list)
    delivery: Optional[DeliveryContext] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class SessionStoreEntry:
    session_key: str
    session_id: str
    agent_id: str
    last_channel: Optional[str] = None
    last_to: Optional[str] = None
    origin_channel: Optional[str] = None
    origin_account: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def delivery(self) -> DeliveryContext:
        return DeliveryContext(
            channel=self.last_channel,
            to=self.last_to,
            origin_channel=self.origin_channel,
            origin_account=self.origin_account,
        )
