"""Custom exceptions for the function discovery service."""

from typing import Optional, Dict, Any


class FunctionDiscoveryException(Exception):
    """Base exception for function discovery."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class DiscoveryException(FunctionDiscoveryException):
    """Raised when a discovery strategy fails for an upstream."""

    def __init__(self, discovery_type: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.discovery_type = discovery_type
        super().__init__(f"Discovery failed for {discovery_type}: {message}", details)


class ClientConnectionException(FunctionDiscoveryException):
    """Raised when client connections fail."""

    def __init__(self, client_type: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.client_type = client_type
        super().__init__(f"{client_type} connection failed: {message}", details)


class FetchException(FunctionDiscoveryException):
    """Raised when a provider API call fails while listing functions."""

    def __init__(self, source: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.source = source
        super().__init__(f"Unable to fetch functions from {source}: {message}", details)


class ProbeException(FunctionDiscoveryException):
    """Raised when an HTTP probe cannot be performed."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Could not perform HTTP GET on {url}: {message}")


class UpdateConflictException(FunctionDiscoveryException):
    """Raised when the store rejects a write because of a stale version."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Update conflict for upstream {key}: {message}")


class WatchExpiredException(FunctionDiscoveryException):
    """Raised when a watch can no longer resume from its resource version."""
    pass


class ConfigurationException(FunctionDiscoveryException):
    """Raised when configuration is invalid."""
    pass
