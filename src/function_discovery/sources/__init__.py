from .base import FetcherDiscovery, FunctionFetcher

__all__ = ["FetcherDiscovery", "FunctionFetcher"]
