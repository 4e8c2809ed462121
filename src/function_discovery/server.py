"""Discovery server wiring the reconciliation loop, strategies and pollers."""

import asyncio
from typing import List, Optional

import httpx
import structlog

from function_discovery.clients.kubernetes.client_factory import KubernetesClientFactory
from function_discovery.clients.kubernetes.k8s_client import KubernetesClient
from function_discovery.clients.store import UpstreamStore
from function_discovery.config.settings import Settings
from function_discovery.controller.controller import UpstreamController
from function_discovery.controller.informer import UpstreamInformer
from function_discovery.core.exceptions import DiscoveryException
from function_discovery.discovery.registry import DiscoveryRegistry
from function_discovery.discovery.resolver import AddressResolver, ServiceResolver, UpstreamResolver
from function_discovery.discovery.swagger import SwaggerDiscovery
from function_discovery.models.upstream import UPSTREAM_TYPE_SERVICE
from function_discovery.sources.aws import AccessToken, AWSDiscovery, AWSLambdaFetcher
from function_discovery.sources.base import FetcherDiscovery
from function_discovery.sources.gcf import GCFFetcher

logger = structlog.get_logger(__name__)


class DiscoveryServer:
    """
    Runs function discovery against an upstream store.

    A single stop event is shared by the informer, the worker pool and every
    poller; :meth:`run` returns only after all of them have returned.
    """

    def __init__(self,
                 settings: Settings,
                 store: Optional[UpstreamStore] = None,
                 resolver: Optional[AddressResolver] = None):
        self.settings = settings
        self.store = store
        self.resolver = resolver

        self.k8s_client: Optional[KubernetesClient] = None
        self.http_client: Optional[httpx.AsyncClient] = None
        self.registry: Optional[DiscoveryRegistry] = None
        self.controller: Optional[UpstreamController] = None
        self.aws_discovery: Optional[AWSDiscovery] = None

        self.logger = logger.bind(component="server")

    async def initialize(self) -> None:
        """Connect clients and build the discovery pipeline."""
        self.logger.info("Initializing discovery server")

        if self.store is None:
            k8s_factory = KubernetesClientFactory(self.settings.kubernetes.model_dump())
            self.k8s_client = k8s_factory.create_client()
            await self.k8s_client.connect()
            if not await self.k8s_client.health_check():
                self.logger.warning("Kubernetes API is not answering yet, the watch will keep retrying")
            self.store = k8s_factory.create_upstream_store(self.k8s_client)

        if self.resolver is None:
            if self.k8s_client is not None:
                self.resolver = UpstreamResolver.for_kubernetes(self.k8s_client)
            else:
                self.resolver = UpstreamResolver({UPSTREAM_TYPE_SERVICE: ServiceResolver()})

        self.registry = self._build_registry()
        informer = UpstreamInformer(self.store, resync_period=self.settings.discovery.resync_seconds)
        self.controller = UpstreamController(
            informer,
            self.registry,
            max_retries=self.settings.discovery.max_retries,
            workers=self.settings.discovery.workers,
        )

    def _build_registry(self) -> DiscoveryRegistry:
        registry = DiscoveryRegistry()

        swagger = self.settings.swagger
        if swagger.enabled:
            self.http_client = httpx.AsyncClient(timeout=httpx.Timeout(swagger.timeout_seconds))
            registry.register(SwaggerDiscovery(
                self.resolver,
                self.store,
                self.http_client,
                swagger_uris=swagger.uris,
                retries=swagger.retries,
            ))

        aws = self.settings.aws
        if aws.enabled:
            self.aws_discovery = AWSDiscovery(
                self.store,
                AWSLambdaFetcher(timeout_seconds=aws.timeout_seconds),
                AccessToken(id=aws.access_key_id, secret=aws.secret_access_key),
            )
            registry.register(self.aws_discovery)

        gcf = self.settings.gcf
        if gcf.enabled:
            registry.register(FetcherDiscovery(GCFFetcher(timeout_seconds=gcf.timeout_seconds), self.store))

        return registry

    async def run(self, stop: asyncio.Event) -> None:
        if self.controller is None:
            raise DiscoveryException("Server", "Server not initialized")

        tasks: List[asyncio.Task] = [asyncio.create_task(self.controller.run(stop))]
        if self.aws_discovery is not None:
            tasks.append(self.aws_discovery.start(self.settings.aws.poll_period_seconds, stop))

        self.logger.info("Discovery server started")
        await asyncio.gather(*tasks)
        self.logger.info("Discovery server stopped")

    async def cleanup(self) -> None:
        try:
            if self.http_client is not None:
                await self.http_client.aclose()
            if self.k8s_client is not None:
                await self.k8s_client.disconnect()
        except Exception as e:
            self.logger.warning("Error during cleanup", error=str(e))

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()
