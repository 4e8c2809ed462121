from .upstream_mapper import UpstreamMapper

__all__ = [
    "UpstreamMapper"
]
