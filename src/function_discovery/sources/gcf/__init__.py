from .fetcher import GCFFetcher

__all__ = ["GCFFetcher"]
