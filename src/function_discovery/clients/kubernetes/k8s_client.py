# src/function_discovery/clients/kubernetes/k8s_client.py
"""Kubernetes client and the custom-resource backed upstream store."""

import asyncio
import threading
from typing import Dict, Any, AsyncIterator, List, Optional, Tuple

import structlog
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from function_discovery.clients.store import UpstreamStore
from function_discovery.core.base_client import BaseClient
from function_discovery.core.exceptions import (
    ClientConnectionException,
    FunctionDiscoveryException,
    UpdateConflictException,
    WatchExpiredException,
)
from function_discovery.core.utils import retry_with_backoff
from function_discovery.mappers.upstream_mapper import UpstreamMapper
from function_discovery.models.upstream import EventType, Upstream, WatchEvent

logger = structlog.get_logger(__name__)

_STREAM_EVENT = "event"
_STREAM_ERROR = "error"
_STREAM_END = "end"


def _read_stream(stream, loop: asyncio.AbstractEventLoop, events: asyncio.Queue) -> None:
    """Forward a blocking watch stream into ``events`` on the loop's thread."""
    def deliver(kind, payload=None) -> bool:
        try:
            loop.call_soon_threadsafe(events.put_nowait, (kind, payload))
        except RuntimeError:
            # loop closed while the server was still holding the watch open
            return False
        return True

    try:
        for event in stream:
            if not deliver(_STREAM_EVENT, event):
                return
    except Exception as e:
        deliver(_STREAM_ERROR, e)
    else:
        deliver(_STREAM_END)


class KubernetesClient(BaseClient):
    """Kubernetes API client used for the upstream store and address resolution."""

    def __init__(self,
                 kubeconfig_path: Optional[str] = None,
                 context: Optional[str] = None):
        super().__init__("KubernetesClient")
        self.kubeconfig_path = kubeconfig_path
        self.context = context

        # API clients
        self.v1: Optional[client.CoreV1Api] = None
        self.custom_objects: Optional[client.CustomObjectsApi] = None
        self.extensions: Optional[client.ApiextensionsV1Api] = None

    async def connect(self) -> None:
        """Connect to the Kubernetes cluster."""
        try:
            if self.kubeconfig_path:
                config.load_kube_config(config_file=self.kubeconfig_path, context=self.context)
                self.logger.info(f"Loaded kubeconfig from {self.kubeconfig_path}")
            else:
                try:
                    config.load_incluster_config()
                    self.logger.info("Loaded in-cluster configuration")
                except config.ConfigException:
                    config.load_kube_config(context=self.context)
                    self.logger.info("Loaded default kubeconfig")

            self.v1 = client.CoreV1Api()
            self.custom_objects = client.CustomObjectsApi()
            self.extensions = client.ApiextensionsV1Api()

            self._connected = True
            self.logger.info("Kubernetes client connected")

        except Exception as e:
            raise ClientConnectionException("Kubernetes", f"Connection failed: {e}")

    async def disconnect(self) -> None:
        self._connected = False
        self.logger.info("Kubernetes client disconnected")

    async def health_check(self) -> bool:
        """Check Kubernetes client health."""
        try:
            if not self._connected or not self.v1:
                return False
            await asyncio.to_thread(client.VersionApi().get_code)
            return True
        except Exception as e:
            self.logger.warning("Kubernetes health check failed", error=str(e))
            return False


class KubernetesUpstreamStore(UpstreamStore):
    """Upstream store backed by a namespaced custom resource.

    An empty ``namespace`` watches upstreams across all namespaces.
    """

    def __init__(self,
                 k8s_client: KubernetesClient,
                 group: str,
                 version: str,
                 plural: str,
                 namespace: str = "default",
                 watch_timeout_seconds: int = 300):
        self.client = k8s_client
        self.group = group
        self.version = version
        self.plural = plural
        self.namespace = namespace
        self.watch_timeout_seconds = watch_timeout_seconds
        self.mapper = UpstreamMapper(group, version)
        self.logger = logger.bind(store="kubernetes", resource=f"{plural}.{group}")

    @property
    def _api(self) -> client.CustomObjectsApi:
        if not self.client.is_connected:
            raise ClientConnectionException("Kubernetes", "Client not connected")
        return self.client.custom_objects

    def _list_call(self):
        if self.namespace:
            return self._api.list_namespaced_custom_object, (self.group, self.version, self.namespace, self.plural)
        return self._api.list_cluster_custom_object, (self.group, self.version, self.plural)

    def _map_or_skip(self, resource: Dict[str, Any]) -> Optional[Upstream]:
        """Map one custom resource, or log and return None when it is malformed."""
        try:
            return self.mapper.from_resource(resource)
        except (KeyError, TypeError, ValidationError) as e:
            metadata = resource.get('metadata') or {}
            self.logger.warning(
                "Skipping malformed upstream resource",
                upstream=f"{metadata.get('namespace', '')}/{metadata.get('name', '<unnamed>')}",
                error=str(e)
            )
            return None

    @retry_with_backoff(max_retries=3)
    async def list(self) -> Tuple[List[Upstream], Optional[str]]:
        func, args = self._list_call()
        result = await asyncio.to_thread(func, *args)
        upstreams = [
            upstream for upstream in map(self._map_or_skip, result.get('items', []))
            if upstream is not None
        ]
        resource_version = (result.get('metadata') or {}).get('resourceVersion')
        self.logger.debug(f"Listed {len(upstreams)} upstreams", resource_version=resource_version)
        return upstreams, resource_version

    async def watch(self, resource_version: Optional[str] = None) -> AsyncIterator[WatchEvent]:
        func, args = self._list_call()
        w = watch.Watch()
        stream = w.stream(
            func, *args,
            resource_version=resource_version,
            timeout_seconds=self.watch_timeout_seconds,
        )
        loop = asyncio.get_running_loop()
        events: asyncio.Queue = asyncio.Queue()
        # A daemon thread, unlike the default executor, is not joined when the loop shuts down
        reader = threading.Thread(
            target=_read_stream, args=(stream, loop, events), name="upstream-watch", daemon=True
        )
        reader.start()
        try:
            while True:
                kind, payload = await events.get()
                if kind == _STREAM_END:
                    return
                if kind == _STREAM_ERROR:
                    raise payload
                event_type = payload.get('type')
                if event_type == 'ERROR':
                    status = payload.get('raw_object') or {}
                    if status.get('code') == 410:
                        raise WatchExpiredException(status.get('message', 'resource version expired'))
                    raise FunctionDiscoveryException(
                        f"Watch returned an error: {status.get('message')}", details=status
                    )
                if event_type not in EventType.__members__:
                    continue
                upstream = self._map_or_skip(payload['object'])
                if upstream is None:
                    continue
                yield WatchEvent(type=EventType(event_type), upstream=upstream)
        except ApiException as e:
            if e.status == 410:
                raise WatchExpiredException(str(e.reason)) from e
            raise
        finally:
            w.stop()

    @retry_with_backoff(max_retries=3)
    async def get(self, key: str) -> Optional[Upstream]:
        namespace, name = key.split('/', 1)
        try:
            resource = await asyncio.to_thread(
                self._api.get_namespaced_custom_object,
                self.group, self.version, namespace, self.plural, name
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return self.mapper.from_resource(resource)

    async def update(self, upstream: Upstream) -> Upstream:
        try:
            resource = await asyncio.to_thread(
                self._api.replace_namespaced_custom_object,
                self.group, self.version, upstream.namespace, self.plural, upstream.name,
                self.mapper.to_resource(upstream)
            )
        except ApiException as e:
            if e.status == 409:
                raise UpdateConflictException(upstream.key, str(e.reason)) from e
            raise
        self.logger.info("Updated upstream", upstream=upstream.key)
        return self.mapper.from_resource(resource)

    async def delete(self, key: str) -> None:
        namespace, name = key.split('/', 1)
        try:
            await asyncio.to_thread(
                self._api.delete_namespaced_custom_object,
                self.group, self.version, namespace, self.plural, name
            )
        except ApiException as e:
            if e.status != 404:
                raise

    async def register_crd(self) -> bool:
        """Register the upstream CustomResourceDefinition.

        Returns False when it was already registered.
        """
        body = {
            'apiVersion': 'apiextensions.k8s.io/v1',
            'kind': 'CustomResourceDefinition',
            'metadata': {'name': f"{self.plural}.{self.group}"},
            'spec': {
                'group': self.group,
                'scope': 'Namespaced',
                'names': {'plural': self.plural, 'kind': self.mapper.kind},
                'versions': [{
                    'name': self.version,
                    'served': True,
                    'storage': True,
                    'schema': {'openAPIV3Schema': {
                        'type': 'object',
                        'x-kubernetes-preserve-unknown-fields': True,
                    }},
                }],
            },
        }
        try:
            await asyncio.to_thread(self.client.extensions.create_custom_resource_definition, body)
        except ApiException as e:
            if e.status == 409:
                self.logger.info("Upstream CRD already registered")
                return False
            raise
        self.logger.info("Registered upstream CRD")
        return True
