"""Watch-fed local cache of upstreams with change notification."""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from function_discovery.clients.store import UpstreamStore
from function_discovery.core.exceptions import WatchExpiredException
from function_discovery.core.utils import sleep_until_stopped
from function_discovery.models.upstream import EventType, Upstream, WatchEvent

logger = structlog.get_logger(__name__)

AddHandler = Callable[[Upstream], None]
UpdateHandler = Callable[[Upstream, Upstream], None]
DeleteHandler = Callable[[Upstream], None]


class UpstreamInformer:
    """Mirrors the upstream collection of a store into a keyed local cache.

    The cache is bootstrapped with a full list and then kept current from
    the watch stream. Registered handlers are notified for every add, update
    and delete, and every ``resync_period`` seconds each cached upstream is
    re-announced as an update so consumers get a chance to reconcile it again.
    """

    def __init__(self,
                 store: UpstreamStore,
                 resync_period: float = 300.0,
                 retry_delay: float = 1.0):
        self.store = store
        self.resync_period = resync_period
        self.retry_delay = retry_delay
        self._cache: Dict[str, Upstream] = {}
        self._add_handlers: List[AddHandler] = []
        self._update_handlers: List[UpdateHandler] = []
        self._delete_handlers: List[DeleteHandler] = []
        self._resource_version: Optional[str] = None
        self._synced = asyncio.Event()
        self.logger = logger.bind(component="informer")

    def add_handler(self,
                    on_add: Optional[AddHandler] = None,
                    on_update: Optional[UpdateHandler] = None,
                    on_delete: Optional[DeleteHandler] = None) -> None:
        if on_add:
            self._add_handlers.append(on_add)
        if on_update:
            self._update_handlers.append(on_update)
        if on_delete:
            self._delete_handlers.append(on_delete)

    def has_synced(self) -> bool:
        return self._synced.is_set()

    def get_by_key(self, key: str) -> Tuple[Optional[Upstream], bool]:
        upstream = self._cache.get(key)
        return upstream, upstream is not None

    def list_keys(self) -> List[str]:
        return list(self._cache)

    async def run(self, stop: asyncio.Event) -> None:
        """Run the list/watch and resync loops until ``stop`` is set."""
        tasks = [asyncio.create_task(self._list_and_watch(stop))]
        if self.resync_period > 0:
            tasks.append(asyncio.create_task(self._resync(stop)))

        await stop.wait()
        self.logger.info("Stopping informer")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def wait_for_cache_sync(self, stop: asyncio.Event) -> bool:
        """Block until the initial list has been applied or ``stop`` is set."""
        if self._synced.is_set():
            return True
        synced = asyncio.create_task(self._synced.wait())
        stopped = asyncio.create_task(stop.wait())
        _, pending = await asyncio.wait({synced, stopped}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        return self._synced.is_set()

    async def _list_and_watch(self, stop: asyncio.Event) -> None:
        needs_list = True
        while not stop.is_set():
            try:
                if needs_list:
                    await self._relist()
                    needs_list = False
                async for event in self.store.watch(self._resource_version):
                    self._apply(event)
            except WatchExpiredException:
                self.logger.info("Watch expired, relisting upstreams")
                needs_list = True
            except Exception as e:
                self.logger.warning("Upstream watch failed, retrying", error=str(e))
                needs_list = True
                await sleep_until_stopped(stop, self.retry_delay)

    async def _relist(self) -> None:
        upstreams, resource_version = await self.store.list()
        previous = self._cache
        self._cache = {u.key: u for u in upstreams}

        for key, upstream in self._cache.items():
            if key in previous:
                self._notify_update(previous[key], upstream)
            else:
                self._notify_add(upstream)
        for key in previous.keys() - self._cache.keys():
            self._notify_delete(previous[key])

        self._resource_version = resource_version
        if not self._synced.is_set():
            self.logger.info(f"Upstream cache synced with {len(self._cache)} upstreams")
            self._synced.set()

    def _apply(self, event: WatchEvent) -> None:
        upstream = event.upstream
        if event.type == EventType.DELETED:
            cached = self._cache.pop(upstream.key, None)
            self._notify_delete(cached or upstream)
        else:
            cached = self._cache.get(upstream.key)
            self._cache[upstream.key] = upstream
            if cached is None:
                self._notify_add(upstream)
            else:
                self._notify_update(cached, upstream)

        if upstream.resource_version:
            self._resource_version = upstream.resource_version

    async def _resync(self, stop: asyncio.Event) -> None:
        while not await sleep_until_stopped(stop, self.resync_period):
            if not self._synced.is_set():
                continue
            self.logger.debug(f"Resyncing {len(self._cache)} upstreams")
            for upstream in list(self._cache.values()):
                self._notify_update(upstream, upstream)

    def _notify_add(self, upstream: Upstream) -> None:
        for handler in self._add_handlers:
            handler(upstream)

    def _notify_update(self, old: Upstream, new: Upstream) -> None:
        for handler in self._update_handlers:
            handler(old, new)

    def _notify_delete(self, upstream: Upstream) -> None:
        for handler in self._delete_handlers:
            handler(upstream)
