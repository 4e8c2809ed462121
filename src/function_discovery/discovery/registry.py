"""Registry selecting discovery strategies for an upstream."""

from typing import List

import structlog

from function_discovery.core.exceptions import DiscoveryException
from function_discovery.models.upstream import Upstream
from .base import DiscoveryStrategy

logger = structlog.get_logger(__name__)


class DiscoveryRegistry:
    """Dispatches upstreams to every registered strategy that should try them."""

    def __init__(self):
        self._strategies: List[DiscoveryStrategy] = []
        self.logger = logger.bind(component="registry")

    def register(self, strategy: DiscoveryStrategy) -> None:
        self._strategies.append(strategy)
        self.logger.info(f"Registered discovery strategy {strategy.concern}")

    @property
    def strategies(self) -> List[DiscoveryStrategy]:
        return list(self._strategies)

    def strategies_for(self, upstream: Upstream) -> List[DiscoveryStrategy]:
        return [s for s in self._strategies if s.should_try(upstream)]

    async def dispatch(self, upstream: Upstream) -> None:
        """Run each eligible strategy against ``upstream``.

        A failing strategy does not stop the remaining ones; failures are
        raised together once all strategies have run. Strategies that no
        longer support the upstream, for example after its type was changed,
        release whatever they track for it.
        """
        strategies = []
        for strategy in self._strategies:
            if not strategy.supports(upstream):
                await strategy.release(upstream.key)
            elif strategy.should_try(upstream):
                strategies.append(strategy)
        if not strategies:
            self.logger.debug("No discovery strategy applies", upstream=upstream.key, type=upstream.type)
            return

        errors = {}
        current = upstream
        for strategy in strategies:
            try:
                updated = await strategy.discover(current)
            except Exception as e:
                errors[strategy.concern] = e
                continue
            if updated is not None:
                current = updated

        if errors:
            message = "; ".join(f"{concern}: {error}" for concern, error in errors.items())
            raise DiscoveryException(upstream.key, message, details={'errors': errors})

    async def release(self, key: str) -> None:
        for strategy in self._strategies:
            await strategy.release(key)
