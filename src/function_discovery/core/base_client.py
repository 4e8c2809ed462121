"""Base client interface for the clients the discovery server owns."""

from abc import ABC, abstractmethod
from typing import Optional
import structlog

logger = structlog.get_logger(__name__)


class BaseClient(ABC):
    """Abstract base class for clients with an explicit connection lifecycle.

    The server connects each client once during initialization and
    disconnects it on cleanup; stores and resolvers built on top of a client
    check ``is_connected`` before issuing calls.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__
        self._connected = False
        self.logger = logger.bind(client=self.name)

    @abstractmethod
    async def connect(self) -> None:
        """Load credentials and create the API objects."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the API objects."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the remote API answers."""
        pass

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def __aenter__(self):
        """Connect on entry; used by one-shot CLI commands."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
