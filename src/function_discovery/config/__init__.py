from .settings import (
    AWSSettings,
    DiscoverySettings,
    GCFSettings,
    KubernetesSettings,
    LogLevel,
    Settings,
    SwaggerSettings,
)

__all__ = [
    "AWSSettings",
    "DiscoverySettings",
    "GCFSettings",
    "KubernetesSettings",
    "LogLevel",
    "Settings",
    "SwaggerSettings",
]
