import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from function_discovery.clients.store import UpstreamStore
from function_discovery.core.exceptions import UpdateConflictException
from function_discovery.discovery.base import DiscoveryStrategy
from function_discovery.models.upstream import EventType, Function, Upstream, WatchEvent


class FakeUpstreamStore(UpstreamStore):
    """In-memory store with optimistic concurrency and a replayable watch log."""

    def __init__(self):
        self._upstreams: Dict[str, Upstream] = {}
        self._events: List[Tuple[int, WatchEvent]] = []
        self._changed = asyncio.Event()
        self._version = 0
        self.updates: List[Upstream] = []
        self.list_calls = 0
        self.watch_errors: List[Exception] = []

    def _record(self, event_type: EventType, upstream: Upstream) -> None:
        self._events.append((self._version, WatchEvent(type=event_type, upstream=upstream.model_copy(deep=True))))
        self._changed.set()

    def _store(self, upstream: Upstream) -> Upstream:
        self._version += 1
        stored = upstream.model_copy(deep=True)
        stored.resource_version = str(self._version)
        self._upstreams[stored.key] = stored
        return stored

    def create(self, upstream: Upstream) -> Upstream:
        stored = self._store(upstream)
        self._record(EventType.ADDED, stored)
        return stored.model_copy(deep=True)

    async def list(self) -> Tuple[List[Upstream], Optional[str]]:
        self.list_calls += 1
        upstreams = [u.model_copy(deep=True) for u in self._upstreams.values()]
        return upstreams, str(self._version)

    async def watch(self, resource_version: Optional[str] = None):
        if self.watch_errors:
            raise self.watch_errors.pop(0)
        since = int(resource_version or 0)
        while True:
            pending = [(v, e) for v, e in self._events if v > since]
            if not pending:
                self._changed.clear()
                await self._changed.wait()
                continue
            for version, event in pending:
                since = version
                yield event

    async def get(self, key: str) -> Optional[Upstream]:
        upstream = self._upstreams.get(key)
        return upstream.model_copy(deep=True) if upstream is not None else None

    async def update(self, upstream: Upstream) -> Upstream:
        current = self._upstreams.get(upstream.key)
        if current is None:
            raise UpdateConflictException(upstream.key, "upstream does not exist")
        if upstream.resource_version != current.resource_version:
            raise UpdateConflictException(upstream.key, "resource version is stale")
        stored = self._store(upstream)
        self.updates.append(stored.model_copy(deep=True))
        self._record(EventType.MODIFIED, stored)
        return stored.model_copy(deep=True)

    async def delete(self, key: str) -> None:
        upstream = self._upstreams.pop(key, None)
        if upstream is not None:
            self._version += 1
            upstream.resource_version = str(self._version)
            self._record(EventType.DELETED, upstream)


class RecordingStrategy(DiscoveryStrategy):
    """Strategy that records every call and fails while ``failures`` is non-empty."""

    def __init__(self,
                 concern: str = "recording",
                 types: Tuple[str, ...] = ("service",),
                 discovered: bool = False,
                 failures: Optional[List[Exception]] = None,
                 result: Optional[Upstream] = None):
        self._concern = concern
        super().__init__()
        self.types = types
        self.discovered = discovered
        self.failures = list(failures or [])
        self.result = result
        self.calls: List[str] = []
        self.seen: List[Upstream] = []
        self.released: List[str] = []

    @property
    def concern(self) -> str:
        return self._concern

    def supports(self, upstream: Upstream) -> bool:
        self.calls.append("supports")
        return upstream.type in self.types

    def is_discovered(self, upstream: Upstream) -> bool:
        self.calls.append("is_discovered")
        return self.discovered

    def is_skipped(self, upstream: Upstream) -> bool:
        self.calls.append("is_skipped")
        return super().is_skipped(upstream)

    async def discover(self, upstream: Upstream) -> Optional[Upstream]:
        self.seen.append(upstream)
        if self.failures:
            raise self.failures.pop(0)
        return self.result

    async def release(self, key: str) -> None:
        self.released.append(key)


def make_upstream(name: str = "petstore",
                  type: str = "service",
                  namespace: str = "default",
                  spec: Optional[Dict[str, Any]] = None,
                  functions: Optional[List[str]] = None,
                  annotations: Optional[Dict[str, str]] = None) -> Upstream:
    return Upstream(
        namespace=namespace,
        name=name,
        type=type,
        spec=spec or {},
        functions=[Function(name=f) for f in functions or []],
        annotations=annotations or {},
    )


@pytest.fixture
def store() -> FakeUpstreamStore:
    return FakeUpstreamStore()
