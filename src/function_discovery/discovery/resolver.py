"""Resolve upstreams to network addresses for probing."""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Optional

import structlog
from kubernetes.client.rest import ApiException

from function_discovery.clients.kubernetes.k8s_client import KubernetesClient
from function_discovery.models.upstream import Upstream, UPSTREAM_TYPE_KUBE, UPSTREAM_TYPE_SERVICE

logger = structlog.get_logger(__name__)


class AddressResolver(ABC):
    """Resolves an upstream to ``host:port``.

    An empty string means the upstream cannot be resolved right now; errors
    are raised.
    """

    @abstractmethod
    async def resolve(self, upstream: Upstream) -> str:
        pass


class ServiceResolver(AddressResolver):
    """Uses the first entry of a service upstream's ``hosts`` list."""

    async def resolve(self, upstream: Upstream) -> str:
        hosts = upstream.spec.get('hosts') or []
        if not hosts:
            return ""
        host = hosts[0]
        if not host.get('addr'):
            return ""
        if host.get('port'):
            return f"{host['addr']}:{host['port']}"
        return host['addr']


class KubernetesServiceResolver(AddressResolver):
    """Uses the cluster IP of the Service a kubernetes upstream points at."""

    def __init__(self, k8s_client: KubernetesClient):
        self.client = k8s_client

    async def resolve(self, upstream: Upstream) -> str:
        name = upstream.spec.get('service_name')
        if not name:
            return ""
        namespace = upstream.spec.get('service_namespace') or upstream.namespace
        port = upstream.spec.get('service_port')

        try:
            service = await asyncio.to_thread(self.client.v1.read_namespaced_service, name, namespace)
        except ApiException as e:
            if e.status == 404:
                logger.debug("Service not found", service=f"{namespace}/{name}")
                return ""
            raise

        cluster_ip = service.spec.cluster_ip if service.spec else None
        if not cluster_ip or cluster_ip == "None":
            return ""
        if not port and service.spec.ports:
            port = service.spec.ports[0].port
        return f"{cluster_ip}:{port}" if port else cluster_ip


class UpstreamResolver(AddressResolver):
    """Dispatches to a resolver by upstream type."""

    def __init__(self, resolvers: Optional[Dict[str, AddressResolver]] = None):
        self.resolvers = resolvers or {}

    @classmethod
    def for_kubernetes(cls, k8s_client: KubernetesClient) -> "UpstreamResolver":
        return cls({
            UPSTREAM_TYPE_SERVICE: ServiceResolver(),
            UPSTREAM_TYPE_KUBE: KubernetesServiceResolver(k8s_client),
        })

    async def resolve(self, upstream: Upstream) -> str:
        resolver = self.resolvers.get(upstream.type)
        if resolver is None:
            return ""
        return await resolver.resolve(upstream)
