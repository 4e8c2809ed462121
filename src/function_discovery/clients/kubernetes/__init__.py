from .client_factory import KubernetesClientFactory
from .k8s_client import KubernetesClient, KubernetesUpstreamStore

__all__ = ["KubernetesClientFactory", "KubernetesClient", "KubernetesUpstreamStore"]
