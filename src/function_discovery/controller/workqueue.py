"""Deduplicating, rate-limited work queue for reconciliation keys."""

import asyncio
from collections import deque
from typing import Deque, Dict, Hashable, Optional, Set, Tuple

import structlog

logger = structlog.get_logger(__name__)


class ItemExponentialFailureRateLimiter:
    """Per-item exponential backoff: ``base_delay * 2**failures`` capped at ``max_delay``."""

    def __init__(self, base_delay: float = 0.005, max_delay: float = 1000.0):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[Hashable, int] = {}

    def when(self, item: Hashable) -> float:
        exp = self._failures.get(item, 0)
        self._failures[item] = exp + 1
        if exp >= 64:
            return self.max_delay
        return min(self.base_delay * (2 ** exp), self.max_delay)

    def num_requeues(self, item: Hashable) -> int:
        return self._failures.get(item, 0)

    def forget(self, item: Hashable) -> None:
        self._failures.pop(item, None)


class RateLimitingQueue:
    """Work queue holding each key at most once.

    A key re-added while a worker holds it is parked as dirty and queued
    again once the worker calls :meth:`done`, so a single key is never
    processed by two workers at the same time.
    """

    def __init__(self, rate_limiter: Optional[ItemExponentialFailureRateLimiter] = None):
        self.rate_limiter = rate_limiter or ItemExponentialFailureRateLimiter()
        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._waiting: Dict[Hashable, asyncio.TimerHandle] = {}
        self._has_items = asyncio.Event()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, item: Hashable) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._has_items.set()

    async def get(self) -> Tuple[Optional[Hashable], bool]:
        """Block until an item is available.

        Returns ``(item, False)``, or ``(None, True)`` once the queue is shut
        down and drained.
        """
        while not self._queue:
            if self._shutting_down:
                return None, True
            self._has_items.clear()
            await self._has_items.wait()

        item = self._queue.popleft()
        self._processing.add(item)
        self._dirty.discard(item)
        return item, False

    def done(self, item: Hashable) -> None:
        self._processing.discard(item)
        if item in self._dirty:
            self._queue.append(item)
            self._has_items.set()

    def add_after(self, item: Hashable, delay: float) -> None:
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(item)
            return

        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay
        existing = self._waiting.get(item)
        if existing is not None:
            if existing.when() <= deadline:
                return
            existing.cancel()
        self._waiting[item] = loop.call_at(deadline, self._fire, item)

    def _fire(self, item: Hashable) -> None:
        self._waiting.pop(item, None)
        self.add(item)

    def add_rate_limited(self, item: Hashable) -> None:
        self.add_after(item, self.rate_limiter.when(item))

    def num_requeues(self, item: Hashable) -> int:
        return self.rate_limiter.num_requeues(item)

    def forget(self, item: Hashable) -> None:
        self.rate_limiter.forget(item)

    def shut_down(self) -> None:
        """Stop accepting items; workers drain what is already queued and exit."""
        self._shutting_down = True
        for handle in self._waiting.values():
            handle.cancel()
        if self._waiting:
            logger.debug(f"Dropped {len(self._waiting)} delayed items on shutdown")
        self._waiting.clear()
        self._has_items.set()
