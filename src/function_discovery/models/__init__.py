from .upstream import *

__all__ = [
    "Function",
    "Upstream",
    "EventType",
    "WatchEvent",
    "make_key",
    "UPSTREAM_TYPE_AWS",
    "UPSTREAM_TYPE_GCF",
    "UPSTREAM_TYPE_KUBE",
    "UPSTREAM_TYPE_SERVICE",
    "ANNOTATION_SERVICE_TYPE",
    "ANNOTATION_SWAGGER_URL",
    "SERVICE_TYPE_SWAGGER",
]
