"""Stateless function fetchers and the strategy that applies them."""

from abc import ABC, abstractmethod
from typing import List, Optional

from function_discovery.clients.store import UpstreamStore
from function_discovery.discovery.base import DiscoveryStrategy
from function_discovery.discovery.diff import FunctionUpdater
from function_discovery.models.upstream import Function, Upstream


class FunctionFetcher(ABC):
    """Lists the functions an upstream currently exposes.

    Fetchers only call the provider API: they neither retry nor write
    anything back.
    """

    source: str = "unknown"

    @abstractmethod
    def can_fetch(self, upstream: Upstream) -> bool:
        pass

    @abstractmethod
    async def fetch(self, upstream: Upstream) -> List[Function]:
        pass


class FetcherDiscovery(DiscoveryStrategy):
    """Keeps an upstream's function list in line with what its fetcher reports.

    Fetch failures propagate so the reconciliation queue retries them.
    """

    def __init__(self, fetcher: FunctionFetcher, store: UpstreamStore):
        self.fetcher = fetcher
        self.updater = FunctionUpdater(store)
        super().__init__()

    @property
    def concern(self) -> str:
        return f"{self.fetcher.source}_functions"

    def supports(self, upstream: Upstream) -> bool:
        return self.fetcher.can_fetch(upstream)

    async def discover(self, upstream: Upstream) -> Optional[Upstream]:
        functions = await self.fetcher.fetch(upstream)
        self.logger.debug(f"Fetched {len(functions)} functions", upstream=upstream.key)
        return await self.updater.apply(upstream, functions)
