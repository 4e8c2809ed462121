from .poller import AccessToken, AWSPoller, Lambda, Region
from .fetcher import AWSLambdaFetcher
from .handler import AWSDiscovery

__all__ = [
    "AccessToken",
    "AWSPoller",
    "Lambda",
    "Region",
    "AWSLambdaFetcher",
    "AWSDiscovery",
]
