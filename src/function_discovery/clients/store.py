"""Upstream store interface consumed by the discovery engine."""

from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional, Tuple

from function_discovery.models.upstream import Upstream, WatchEvent


class UpstreamStore(ABC):
    """List/Watch/Get/Update/Delete over the upstream resource collection."""

    @abstractmethod
    async def list(self) -> Tuple[List[Upstream], Optional[str]]:
        """Return every upstream and the collection version to resume watching from."""
        pass

    @abstractmethod
    def watch(self, resource_version: Optional[str] = None) -> AsyncIterator[WatchEvent]:
        """Stream change events after ``resource_version``.

        The iterator ends when the server closes the watch; callers resume
        from the last version they saw.
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[Upstream]:
        """Return the upstream stored under ``key``, or None when it does not exist."""
        pass

    @abstractmethod
    async def update(self, upstream: Upstream) -> Upstream:
        """Persist ``upstream`` and return the stored copy with its new version."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass
