"""Utility functions and decorators."""

import asyncio
import logging
import structlog
from typing import Awaitable, Callable, TypeVar
from tenacity import AsyncRetrying, retry, stop_after_attempt, wait_exponential

T = TypeVar('T')


def retry_with_backoff(
    max_retries: int = 3,
    backoff_factor: float = 1.5,
    max_wait: float = 60.0
):
    """Decorator for retry with exponential backoff."""
    return retry(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=backoff_factor, max=max_wait),
        reraise=True
    )


async def with_retries(retries: int, operation: Callable[[], Awaitable[T]]) -> T:
    """Run ``operation`` once plus up to ``retries`` more times.

    The last error is re-raised when every attempt fails.
    """
    async for attempt in AsyncRetrying(stop=stop_after_attempt(max(retries, 0) + 1), reraise=True):
        with attempt:
            return await operation()


async def sleep_until_stopped(stop: asyncio.Event, seconds: float) -> bool:
    """Sleep for ``seconds`` or until ``stop`` is set; returns True when stopped."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
    return stop.is_set()


def setup_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Setup structured logging configuration."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(message)s'
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
