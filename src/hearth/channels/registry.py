"""Registry of connected channel adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hearth.log import get_logger

if TYPE_CHECKING:
    from hearth.channels.base import ChannelAdapter

logger = get_logger(__name__)


class ChannelRegistry:
    def __init__(self) -> None:
        self._adapters: dict[str, ChannelAdapter] = {}

    def register(self, adapter: ChannelAdapter) -> None:
        self._adapters[adapter.channel_name] = adapter
        logger.info("channel_registered", channel=adapter.channel_name)

    def get(self, channel: str) -> ChannelAdapter | None:
        return self._adapters.get(channel)

    def all(self) -> list[ChannelAdapter]:
        return list(self._adapters.values())

    def names(self) -> list[str]:
        return list(self._adapters.keys())
