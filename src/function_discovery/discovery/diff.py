"""Diff & update engine for upstream function lists."""

from collections import Counter
from typing import Callable, Iterable, List, Optional, TypeVar

import structlog

from function_discovery.clients.store import UpstreamStore
from function_discovery.models.upstream import Function, Upstream

logger = structlog.get_logger(__name__)

T = TypeVar('T')


def function_name(function: Function) -> str:
    return function.name


def functions_changed(previous: Iterable[T], current: Iterable[T], key: Callable[[T], str]) -> bool:
    """True iff the multisets of identity keys of the two lists differ."""
    return Counter(map(key, previous)) != Counter(map(key, current))


class FunctionUpdater:
    """Writes a new function list to an upstream only when it changed."""

    def __init__(self, store: UpstreamStore):
        self.store = store
        self.logger = logger.bind(component="function_updater")

    async def apply(self,
                    upstream: Upstream,
                    functions: List[Function],
                    key: Callable[[Function], str] = function_name) -> Optional[Upstream]:
        """Returns the stored upstream after an update, or None when nothing changed."""
        if not functions_changed(upstream.functions, functions, key):
            self.logger.debug("Functions unchanged", upstream=upstream.key)
            return None

        updated = upstream.model_copy(deep=True)
        updated.functions = functions
        self.logger.info(
            "Updating upstream functions",
            upstream=upstream.key,
            previous=len(upstream.functions),
            current=len(functions)
        )
        return await self.store.update(updated)
