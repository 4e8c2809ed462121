from .exceptions import *
from .base_client import BaseClient
from .utils import *

__all__ = [
    "BaseClient",
    "FunctionDiscoveryException",
    "DiscoveryException",
    "ClientConnectionException",
    "FetchException",
    "ProbeException",
    "UpdateConflictException",
    "WatchExpiredException",
    "ConfigurationException",
    "retry_with_backoff",
    "with_retries",
    "sleep_until_stopped",
    "setup_logging",
]
