"""Lifecycle interface for long-running components."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Service(ABC):
    """A component started and stopped with the application.

    A service whose ``critical`` flag is False may fail to start without
    aborting startup.
    """

    critical: bool = True

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
