"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class ConversationType(StrEnum):
    MAIN = "main"
    GROUP = "group"
    CHANNEL = "channel"


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class Channel(StrEnum):
    TELEGRAM = "telegram"
    DISCORD = "discord"
    WHATSAPP = "whatsapp"
    SIGNAL = "signal"


class ToolName(StrEnum):
    """Identifiers of the built-in tools.

    Tools loaded at runtime may use other names; the registry validates those
    when they are registered.
    """

    TERMINAL = "terminal"
    FILESYSTEM = "filesystem"
    SEARCH = "search"
    MEMORY_SEARCH = "memory_search"
    BROWSER = "browser"
    CALENDAR = "calendar"
    BATCH = "batch"
    TELEGRAM = "telegram"
    DISCORD = "discord"
    WHATSAPP = "whatsapp"
    SIGNAL = "signal"


CHANNEL_TOOLS: frozenset[str] = frozenset(c.value for c in Channel)
