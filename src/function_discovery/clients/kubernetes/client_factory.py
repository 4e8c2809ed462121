# src/function_discovery/clients/kubernetes/client_factory.py
"""Kubernetes client factory."""

from typing import Dict, Any
import structlog

from .k8s_client import KubernetesClient, KubernetesUpstreamStore

logger = structlog.get_logger(__name__)


class KubernetesClientFactory:
    """Factory for creating Kubernetes clients and the upstream store."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.kubeconfig_path = config.get("kubeconfig_path")
        self.context = config.get("context")
        self.namespace = config.get("namespace", "default")

        self.logger = logger.bind(factory="kubernetes")

    def create_client(self) -> KubernetesClient:
        return KubernetesClient(
            kubeconfig_path=self.kubeconfig_path,
            context=self.context,
        )

    def create_upstream_store(self, k8s_client: KubernetesClient) -> KubernetesUpstreamStore:
        """Create the upstream store over an already constructed client."""
        self.logger.debug("Creating upstream store", namespace=self.namespace or "<all>")
        return KubernetesUpstreamStore(
            k8s_client,
            group=self.config.get("crd_group", "gloo.solo.io"),
            version=self.config.get("crd_version", "v1"),
            plural=self.config.get("crd_plural", "upstreams"),
            namespace=self.namespace,
            watch_timeout_seconds=self.config.get("watch_timeout_seconds", 300),
        )
