"""Base discovery strategy interface."""

import threading
from abc import ABC, abstractmethod
from typing import Optional, Set

import structlog

from function_discovery.models.upstream import Upstream

logger = structlog.get_logger(__name__)


class SkipCache:
    """Upstream keys that must not be tried again for the life of the process.

    Entries are only ever added.
    """

    def __init__(self):
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    def mark(self, key: str) -> None:
        with self._lock:
            self._keys.add(key)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


class DiscoveryStrategy(ABC):
    """Abstract base class for all discovery strategies.

    A strategy is eligible for an upstream when it supports the upstream's
    type, has not already marked the upstream as discovered and has not
    placed it in its skip cache, checked in that order.
    """

    def __init__(self, skip_cache: Optional[SkipCache] = None):
        self.skip_cache = skip_cache if skip_cache is not None else SkipCache()
        self.logger = logger.bind(strategy=self.concern)

    @property
    @abstractmethod
    def concern(self) -> str:
        """Name of what this strategy discovers."""
        pass

    @abstractmethod
    def supports(self, upstream: Upstream) -> bool:
        pass

    def is_discovered(self, upstream: Upstream) -> bool:
        return False

    def is_skipped(self, upstream: Upstream) -> bool:
        return upstream.key in self.skip_cache

    def should_try(self, upstream: Upstream) -> bool:
        return (
            self.supports(upstream)
            and not self.is_discovered(upstream)
            and not self.is_skipped(upstream)
        )

    @abstractmethod
    async def discover(self, upstream: Upstream) -> Optional[Upstream]:
        """Run discovery for ``upstream``.

        Implementations must not mutate the argument. Returns the stored
        upstream when discovery wrote an update, otherwise None.
        """
        pass

    async def release(self, key: str) -> None:
        """Drop any state tracked for a deleted upstream."""
        pass
