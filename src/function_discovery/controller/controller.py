"""Reconciliation controller driving discovery from upstream change events."""

import asyncio
from typing import Callable, Optional

import structlog

from function_discovery.controller.informer import UpstreamInformer
from function_discovery.controller.workqueue import RateLimitingQueue
from function_discovery.discovery.registry import DiscoveryRegistry

logger = structlog.get_logger(__name__)

AbandonedHandler = Callable[[str, Exception], None]


def log_abandoned(key: str, error: Exception) -> None:
    logger.error("Dropping upstream out of the queue", upstream=key, error=str(error))


class UpstreamController:
    """Worker pool reconciling upstream keys taken from a rate-limited queue.

    Each key moves through ``pending -> processing`` and then is either
    forgotten on success, requeued with backoff while it has failed fewer
    than ``max_retries`` times, or abandoned and handed to ``on_abandoned``.
    """

    def __init__(self,
                 informer: UpstreamInformer,
                 registry: DiscoveryRegistry,
                 max_retries: int = 5,
                 workers: int = 1,
                 queue: Optional[RateLimitingQueue] = None,
                 on_abandoned: Optional[AbandonedHandler] = None):
        self.informer = informer
        self.registry = registry
        self.max_retries = max_retries
        self.workers = max(workers, 1)
        self.queue = queue or RateLimitingQueue()
        self.on_abandoned = on_abandoned or log_abandoned
        self.logger = logger.bind(component="controller")

        informer.add_handler(
            on_add=lambda upstream: self.queue.add(upstream.key),
            on_update=lambda old, new: self.queue.add(new.key),
            on_delete=lambda upstream: self.queue.add(upstream.key),
        )

    async def run(self, stop: asyncio.Event) -> None:
        """Run the informer and the worker pool until ``stop`` is set."""
        informer_task = asyncio.create_task(self.informer.run(stop))
        try:
            if not await self.informer.wait_for_cache_sync(stop):
                self.logger.warning("Stopped before the upstream cache synced")
                return

            self.logger.info(f"Starting {self.workers} reconciliation workers")
            workers = [asyncio.create_task(self._run_worker()) for _ in range(self.workers)]
            await stop.wait()
            self.queue.shut_down()
            await asyncio.gather(*workers)
            self.logger.info("Reconciliation workers stopped")
        finally:
            self.queue.shut_down()
            await informer_task

    async def _run_worker(self) -> None:
        while await self.process_next_item():
            pass

    async def process_next_item(self) -> bool:
        """Process one key; returns False once the queue has shut down."""
        key, shutdown = await self.queue.get()
        if shutdown:
            return False

        try:
            await self.process_item(key)
        except Exception as e:
            if self.queue.num_requeues(key) < self.max_retries:
                self.logger.warning("Error reconciling upstream, requeuing", upstream=key, error=str(e))
                self.queue.add_rate_limited(key)
            else:
                self.queue.forget(key)
                self.on_abandoned(key, e)
        else:
            self.queue.forget(key)
        finally:
            self.queue.done(key)
        return True

    async def process_item(self, key: str) -> None:
        upstream, exists = self.informer.get_by_key(key)
        if not exists:
            self.logger.info("Upstream removed, releasing tracked state", upstream=key)
            await self.registry.release(key)
            return

        await self.registry.dispatch(upstream)
