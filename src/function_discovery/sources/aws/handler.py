"""Adapter between the AWS poller and the discovery registry.

The poller knows nothing about upstreams; this strategy translates
upstreams into regions on the way in and Lambdas into functions on the way
out.
"""

import asyncio
from typing import List, Optional

import structlog

from function_discovery.clients.store import UpstreamStore
from function_discovery.core.exceptions import DiscoveryException
from function_discovery.discovery.base import DiscoveryStrategy
from function_discovery.discovery.diff import FunctionUpdater
from function_discovery.models.upstream import Function, Upstream, UPSTREAM_TYPE_AWS
from .poller import AccessToken, AWSPoller, Fetcher, Lambda, Region

logger = structlog.get_logger(__name__)

REGION_KEY = "region"
FUNCTION_NAME_KEY = "FunctionName"
QUALIFIER_KEY = "Qualifier"


def to_lambdas(functions: List[Function]) -> List[Lambda]:
    lambdas = []
    for f in functions:
        name = f.spec.get(FUNCTION_NAME_KEY)
        qualifier = f.spec.get(QUALIFIER_KEY)
        if not name or not qualifier:
            if ':' not in f.name:
                logger.debug("Ignoring function without a qualifier", function=f.name)
                continue
            name, qualifier = f.name.split(':', 1)
        lambdas.append(Lambda(name=name, qualifier=qualifier))
    return lambdas


def to_functions(lambdas: List[Lambda]) -> List[Function]:
    return [
        Function(
            name=l.key,
            spec={FUNCTION_NAME_KEY: l.name, QUALIFIER_KEY: l.qualifier}
        )
        for l in lambdas
    ]


def to_region(upstream: Upstream, token: AccessToken) -> Region:
    region_name = upstream.spec.get(REGION_KEY)
    if not region_name:
        raise DiscoveryException("aws", f"upstream {upstream.key} does not name a region")
    return Region(
        id=upstream.key,
        name=region_name,
        token=token,
        lambdas=to_lambdas(upstream.functions),
    )


class AWSDiscovery(DiscoveryStrategy):
    """Tracks ``aws`` upstreams as poller regions and writes Lambda changes back."""

    concern = "aws_lambdas"

    def __init__(self, store: UpstreamStore, fetcher: Fetcher, token: Optional[AccessToken] = None):
        super().__init__()
        self.store = store
        self.token = token or AccessToken()
        self.function_updater = FunctionUpdater(store)
        self.poller = AWSPoller(fetcher, self.update_upstream)

    def supports(self, upstream: Upstream) -> bool:
        return upstream.type == UPSTREAM_TYPE_AWS

    async def discover(self, upstream: Upstream) -> Optional[Upstream]:
        self.poller.add_update_region(to_region(upstream, self.token))
        return None

    async def release(self, key: str) -> None:
        self.poller.remove_region(key)

    def start(self, poll_period: float, stop: asyncio.Event) -> asyncio.Task:
        return self.poller.start(poll_period, stop)

    async def update_upstream(self, region: Region) -> None:
        upstream = await self.store.get(region.id)
        if upstream is None:
            self.logger.info("Upstream not found, will not update", upstream=region.id)
            return
        if not self.supports(upstream):
            self.logger.info("Upstream is no longer an aws upstream, dropping region",
                             upstream=region.id, type=upstream.type)
            self.poller.remove_region(region.id)
            return
        await self.function_updater.apply(upstream, to_functions(region.lambdas))
