from .store import UpstreamStore
from .kubernetes.client_factory import KubernetesClientFactory

__all__ = ["UpstreamStore", "KubernetesClientFactory"]
