"""Swagger discovery: probe well-known URIs and annotate swagger upstreams."""

import errno
from typing import List, Optional

import httpx

from function_discovery.clients.store import UpstreamStore
from function_discovery.core.exceptions import ProbeException
from function_discovery.core.utils import with_retries
from function_discovery.models.upstream import (
    ANNOTATION_SERVICE_TYPE,
    ANNOTATION_SWAGGER_URL,
    SERVICE_TYPE_SWAGGER,
    UPSTREAM_TYPE_KUBE,
    UPSTREAM_TYPE_SERVICE,
    Upstream,
)
from .base import DiscoveryStrategy, SkipCache
from .resolver import AddressResolver

COMMON_SWAGGER_URIS = [
    "/swagger.json",
    "/swagger/docs/v1",
    "/swagger/docs/v2",
    "/v1/swagger",
]


class TransientErrorPolicy:
    """Decides whether a failed probe may be retried on a later pass.

    The whole cause chain is inspected, since HTTP clients wrap the socket
    error that carries the errno.
    """

    TRANSIENT_ERRNOS = frozenset({errno.EHOSTUNREACH, errno.ENETUNREACH, errno.ECONNREFUSED})
    TRANSIENT_MESSAGES = ("no route to host", "network is unreachable", "connection refused")

    def is_transient(self, error: BaseException) -> bool:
        seen = set()
        current: Optional[BaseException] = error
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            if isinstance(current, httpx.TimeoutException):
                return True
            if isinstance(current, OSError) and current.errno in self.TRANSIENT_ERRNOS:
                return True
            message = str(current).lower()
            if any(m in message for m in self.TRANSIENT_MESSAGES):
                return True
            current = current.__cause__ or current.__context__
        return False


def is_swagger(upstream: Upstream) -> bool:
    return upstream.annotations.get(ANNOTATION_SERVICE_TYPE) == SERVICE_TYPE_SWAGGER


class SwaggerDiscovery(DiscoveryStrategy):
    """Marks kubernetes and service upstreams that serve a swagger document.

    Upstreams whose probe fails with a non-transient error are skipped for
    the rest of the process lifetime.
    """

    concern = "swagger"

    def __init__(self,
                 resolver: AddressResolver,
                 store: UpstreamStore,
                 http_client: httpx.AsyncClient,
                 swagger_uris: Optional[List[str]] = None,
                 retries: int = 0,
                 skip_cache: Optional[SkipCache] = None,
                 error_policy: Optional[TransientErrorPolicy] = None):
        super().__init__(skip_cache)
        self.resolver = resolver
        self.store = store
        self.http_client = http_client
        self.swagger_uris = list(swagger_uris or [])
        self.retries = retries
        self.error_policy = error_policy or TransientErrorPolicy()

    def supports(self, upstream: Upstream) -> bool:
        return upstream.type in (UPSTREAM_TYPE_KUBE, UPSTREAM_TYPE_SERVICE)

    def is_discovered(self, upstream: Upstream) -> bool:
        return is_swagger(upstream)

    async def discover(self, upstream: Upstream) -> Optional[Upstream]:
        self.logger.debug("Initiating swagger detection", upstream=upstream.key)
        try:
            url = await with_retries(self.retries, lambda: self.probe(upstream))
        except Exception as e:
            if not self.error_policy.is_transient(e):
                self.skip_cache.mark(upstream.key)
            self.logger.warning(
                "Unable to discover whether upstream implements swagger",
                upstream=upstream.key,
                error=str(e)
            )
            return None

        if url is None:
            return None

        annotated = upstream.model_copy(deep=True)
        annotated.annotations[ANNOTATION_SERVICE_TYPE] = SERVICE_TYPE_SWAGGER
        annotated.annotations[ANNOTATION_SWAGGER_URL] = url
        self.logger.info("Swagger service detected", upstream=upstream.key, url=url)
        return await self.store.update(annotated)

    async def probe(self, upstream: Upstream) -> Optional[str]:
        """Return the first candidate URL answering 200, or None."""
        addr = await self.resolver.resolve(upstream)
        if not addr:
            return None

        for uri in self.swagger_uris + COMMON_SWAGGER_URIS:
            url = f"http://{addr}{uri}"
            self.logger.debug("Querying swagger url", url=url)
            try:
                response = await self.http_client.get(url, follow_redirects=True)
            except httpx.HTTPError as e:
                raise ProbeException(url, str(e)) from e
            if response.status_code == 200:
                return url
        return None
