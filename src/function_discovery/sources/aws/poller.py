"""Periodic poller tracking the Lambda functions of AWS regions."""

import asyncio
import threading
from typing import Awaitable, Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from function_discovery.core.utils import sleep_until_stopped
from function_discovery.discovery.diff import functions_changed

logger = structlog.get_logger(__name__)


class AccessToken(BaseModel):
    """Credentials used to talk to AWS."""

    id: Optional[str] = None
    secret: Optional[str] = None


class Lambda(BaseModel):
    """An AWS Lambda; each qualifier is treated as a separate Lambda."""

    model_config = ConfigDict(frozen=True)

    name: str
    qualifier: str

    @property
    def key(self) -> str:
        return f"{self.name}:{self.qualifier}"


class Region(BaseModel):
    """An AWS region tracked for one upstream, with its last committed Lambdas."""

    id: str
    name: str
    token: AccessToken = Field(default_factory=AccessToken)
    lambdas: List[Lambda] = Field(default_factory=list)


Fetcher = Callable[[str, AccessToken], Awaitable[List[Lambda]]]
Updater = Callable[[Region], Awaitable[None]]


def lambda_key(l: Lambda) -> str:
    return l.key


def lambdas_changed(previous: List[Lambda], current: List[Lambda]) -> bool:
    return functions_changed(previous, current, lambda_key)


class RegionRepository:
    """In-memory regions keyed by id, guarded by a single lock."""

    def __init__(self):
        self._regions: Dict[str, Region] = {}
        self._lock = threading.Lock()

    def get(self, region_id: str) -> Optional[Region]:
        with self._lock:
            return self._regions.get(region_id)

    def set(self, region: Region) -> None:
        with self._lock:
            self._regions[region.id] = region

    def commit_lambdas(self, region_id: str, lambdas: List[Lambda]) -> bool:
        """Replace the Lambdas of a region that is still tracked."""
        with self._lock:
            existing = self._regions.get(region_id)
            if existing is None:
                return False
            self._regions[region_id] = existing.model_copy(update={'lambdas': list(lambdas)})
            return True

    def delete(self, region_id: str) -> None:
        with self._lock:
            self._regions.pop(region_id, None)

    def regions(self) -> List[Region]:
        with self._lock:
            return list(self._regions.values())


class AWSPoller:
    """Polls every tracked region and pushes Lambda changes through ``updater``.

    A region's stored Lambdas only change after the updater succeeded, so a
    failed write is retried on the next tick instead of being mistaken for
    a no-op.
    """

    def __init__(self, fetcher: Fetcher, updater: Updater):
        self.repo = RegionRepository()
        self.fetcher = fetcher
        self.updater = updater
        self.logger = logger.bind(poller="aws")

    def add_update_region(self, region: Region) -> None:
        """Track ``region``, keeping the Lambdas already known for it until the next poll."""
        existing = self.repo.get(region.id)
        if existing is not None:
            region = region.model_copy(update={'lambdas': existing.lambdas})
        self.repo.set(region)

    def remove_region(self, region_id: str) -> None:
        self.repo.delete(region_id)

    def start(self, poll_period: float, stop: asyncio.Event) -> asyncio.Task:
        return asyncio.create_task(self.run(poll_period, stop))

    async def run(self, poll_period: float, stop: asyncio.Event) -> None:
        self.logger.info(f"Polling AWS Lambda every {poll_period}s")
        while not stop.is_set():
            await self.poll()
            await sleep_until_stopped(stop, poll_period)
        self.logger.info("AWS poller stopped")

    async def poll(self) -> None:
        """Run one poll over all tracked regions."""
        for region in self.repo.regions():
            try:
                lambdas = await self.fetcher(region.name, region.token)
            except Exception as e:
                self.logger.warning("Unable to get lambdas", region=region.name, upstream=region.id, error=str(e))
                continue

            if not lambdas_changed(region.lambdas, lambdas):
                continue

            updated = region.model_copy(update={'lambdas': lambdas})
            try:
                await self.updater(updated)
            except Exception as e:
                self.logger.warning(
                    "Unable to update change in lambdas",
                    region=region.name,
                    upstream=region.id,
                    error=str(e)
                )
                continue
            self.repo.commit_lambdas(region.id, lambdas)
