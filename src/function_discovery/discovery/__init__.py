from .base import DiscoveryStrategy, SkipCache
from .registry import DiscoveryRegistry
from .diff import FunctionUpdater, functions_changed
from .resolver import AddressResolver, UpstreamResolver
from .swagger import SwaggerDiscovery, TransientErrorPolicy

__all__ = [
    "DiscoveryStrategy",
    "SkipCache",
    "DiscoveryRegistry",
    "FunctionUpdater",
    "functions_changed",
    "AddressResolver",
    "UpstreamResolver",
    "SwaggerDiscovery",
    "TransientErrorPolicy",
]
