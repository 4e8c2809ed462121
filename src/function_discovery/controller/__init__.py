from .workqueue import ItemExponentialFailureRateLimiter, RateLimitingQueue
from .informer import UpstreamInformer
from .controller import UpstreamController, log_abandoned

__all__ = [
    "ItemExponentialFailureRateLimiter",
    "RateLimitingQueue",
    "UpstreamInformer",
    "UpstreamController",
    "log_abandoned",
]
