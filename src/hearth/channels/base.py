"""Abstract channel adapter: the boundary to a messaging platform SDK."""

from __future__ import annotations

from abc import ABC, abstractmethod

from hearth.channels.models import OutgoingMessage


class ChannelAdapter(ABC):
    """Sends messages to one platform.

    Concrete adapters wrap the platform SDK; subclass this and register the
    instance with ChannelRegistry.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Channel identifier, e.g. "telegram"."""
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    async def send(self, message: OutgoingMessage) -> str | None:
        """Deliver *message*; return the platform message id if there is one."""
        ...
