"""Keeps gateway upstreams in sync with the functions their backends expose."""

__version__ = "0.1.0"
