"""Channel-send tools: deliver a message through a connected messaging channel."""

from __future__ import annotations

import asyncio
import re
from typing import Any

from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.channels.models import Attachment, OutgoingMessage
from hearth.channels.registry import ChannelRegistry
from hearth.core.session import SessionManager
from hearth.core.types import Channel
from hearth.exceptions import ToolError
from hearth.log import get_logger
from hearth.security.paths import check_path_access
from hearth.security.policy import SecurityContext

logger = get_logger(__name__)

SELF_ALIASES = frozenset({"me", "myself"})
MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024
_MEDIA_PATH = re.compile(
    r"(?:^|\s)(/[^\s]+\.(?:png|jpe?g|gif|webp|mp3|ogg|m4a|wav|mp4|pdf|txt|csv|zip))(?=\s|$)",
    re.IGNORECASE,
)

_ADDRESS_NAMES: dict[Channel, str] = {
    Channel.TELEGRAM: "Chat ID",
    Channel.DISCORD: "Channel ID",
    Channel.WHATSAPP: "Phone number or chat ID",
    Channel.SIGNAL: "Phone number or group ID",
}


class ChannelSendTool(Tool):
    """Sends text (and media found by absolute path in the text) to one channel.

    When ``to`` is omitted or is "me", the recipient is the address this
    conversation last talked to on the same channel.
    """

    def __init__(self, channel: Channel, channels: ChannelRegistry, session_manager: SessionManager):
        self._channel = Channel(channel)
        self._channels = channels
        self._sessions = session_manager

    @property
    def name(self) -> str:
        return self._channel.value

    @property
    def label(self) -> str:
        return self._channel.value.capitalize()

    @property
    def description(self) -> str:
        return (
            f"Send a message via {self.label}. Include absolute file paths in the message "
            "to send images, audio or files. Omit 'to' (or use 'me') to reply in the current "
            f"{self.label} chat; otherwise give the {_ADDRESS_NAMES[self._channel].lower()}."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message text"},
                "to": {
                    "type": "string",
                    "description": f"{_ADDRESS_NAMES[self._channel]}; omit or 'me' for the current chat",
                },
            },
            "required": ["message"],
        }

    async def execute(
        self,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        message = params.get("message") or ""
        if not message:
            return ToolResult.fail("Message is required")

        to = (params.get("to") or "").strip()
        if not to or to.lower() in SELF_ALIASES:
            to = await self._sessions.resolve_delivery_target(context.conversation_id, self._channel.value) or ""
            if not to:
                return ToolResult.fail(
                    f"{_ADDRESS_NAMES[self._channel]} is required. This conversation has no "
                    f"{self.label} delivery context to reply to, so provide the recipient explicitly."
                )

        adapter = self._channels.get(self._channel.value)
        if adapter is None:
            return ToolResult.fail(f"{self.label} channel is not configured.")
        if not adapter.is_connected():
            return ToolResult.fail(f"{self.label} is not connected.")

        attachments = await asyncio.to_thread(_collect_attachments, message, security)
        outgoing = OutgoingMessage(to=to, text=message, attachments=attachments)
        message_id = await adapter.send(outgoing)
        logger.info(
            "channel_message_sent",
            channel=self._channel.value,
            attachments=len(attachments),
            message_id=message_id,
        )
        suffix = f" with {len(attachments)} attachment(s)" if attachments else ""
        return ToolResult.ok(f"Message sent to {self.label} {to}{suffix}")


def _collect_attachments(text: str, security: SecurityContext) -> list[Attachment]:
    attachments = []
    for match in _MEDIA_PATH.finditer(text):
        try:
            path = check_path_access(match.group(1), security.execution)
        except ToolError as e:
            logger.warning("channel_attachment_blocked", path=match.group(1), error=str(e))
            continue
        if not path.is_file() or path.stat().st_size > MAX_ATTACHMENT_BYTES:
            continue
        attachments.append(Attachment.from_path(path))
    return attachments


def channel_tools(channels: ChannelRegistry, session_manager: SessionManager) -> list[ChannelSendTool]:
    return [ChannelSendTool(channel, channels, session_manager) for channel in Channel]
