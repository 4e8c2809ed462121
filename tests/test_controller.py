import asyncio
from typing import List, Tuple

import pytest
from structlog.testing import capture_logs

from conftest import FakeUpstreamStore, RecordingStrategy, make_upstream
from function_discovery.controller.controller import UpstreamController
from function_discovery.controller.informer import UpstreamInformer
from function_discovery.controller.workqueue import ItemExponentialFailureRateLimiter, RateLimitingQueue
from function_discovery.discovery.registry import DiscoveryRegistry


def _controller(store: FakeUpstreamStore, *strategies, max_retries: int = 5):
    registry = DiscoveryRegistry()
    for strategy in strategies:
        registry.register(strategy)
    abandoned: List[Tuple[str, Exception]] = []
    controller = UpstreamController(
        UpstreamInformer(store, resync_period=0),
        registry,
        max_retries=max_retries,
        queue=RateLimitingQueue(ItemExponentialFailureRateLimiter(base_delay=0.001)),
        on_abandoned=lambda key, error: abandoned.append((key, error)),
    )
    return controller, abandoned


async def _sync(controller: UpstreamController, stop: asyncio.Event) -> asyncio.Task:
    task = asyncio.create_task(controller.informer.run(stop))
    await asyncio.wait_for(controller.informer.wait_for_cache_sync(stop), timeout=1)
    return task


@pytest.mark.asyncio
async def test_informer_events_enqueue_keys(store: FakeUpstreamStore) -> None:
    store.create(make_upstream("petstore"))
    store.create(make_upstream("orders"))
    controller, _ = _controller(store)
    stop = asyncio.Event()

    task = await _sync(controller, stop)

    assert len(controller.queue) == 2

    stop.set()
    await task


@pytest.mark.asyncio
async def test_successful_item_is_forgotten(store: FakeUpstreamStore) -> None:
    store.create(make_upstream("petstore"))
    strategy = RecordingStrategy()
    controller, abandoned = _controller(store, strategy)
    stop = asyncio.Event()
    task = await _sync(controller, stop)

    assert await controller.process_next_item() is True

    assert [u.key for u in strategy.seen] == ["default/petstore"]
    assert controller.queue.num_requeues("default/petstore") == 0
    assert len(controller.queue) == 0
    assert abandoned == []

    stop.set()
    await task


@pytest.mark.asyncio
async def test_failing_item_is_retried_then_abandoned(store: FakeUpstreamStore) -> None:
    store.create(make_upstream("petstore"))
    strategy = RecordingStrategy(failures=[RuntimeError("boom")] * 10)
    controller, abandoned = _controller(store, strategy, max_retries=2)
    stop = asyncio.Event()
    task = await _sync(controller, stop)

    for _ in range(3):
        assert await asyncio.wait_for(controller.process_next_item(), timeout=1) is True

    assert len(strategy.seen) == 3
    assert [key for key, _ in abandoned] == ["default/petstore"]
    assert "boom" in str(abandoned[0][1])
    assert controller.queue.num_requeues("default/petstore") == 0
    await asyncio.sleep(0.02)
    assert len(controller.queue) == 0

    stop.set()
    await task


@pytest.mark.asyncio
async def test_item_recovers_after_transient_failure(store: FakeUpstreamStore) -> None:
    store.create(make_upstream("petstore"))
    strategy = RecordingStrategy(failures=[RuntimeError("boom")])
    controller, abandoned = _controller(store, strategy, max_retries=2)
    stop = asyncio.Event()
    task = await _sync(controller, stop)

    await controller.process_next_item()
    assert controller.queue.num_requeues("default/petstore") == 1
    await asyncio.wait_for(controller.process_next_item(), timeout=1)

    assert len(strategy.seen) == 2
    assert controller.queue.num_requeues("default/petstore") == 0
    assert abandoned == []

    stop.set()
    await task


@pytest.mark.asyncio
async def test_unsupported_upstream_is_a_noop(store: FakeUpstreamStore) -> None:
    store.create(make_upstream("static", type="static"))
    strategy = RecordingStrategy(types=("aws",))
    controller, abandoned = _controller(store, strategy)
    stop = asyncio.Event()
    task = await _sync(controller, stop)

    with capture_logs() as logs:
        await controller.process_next_item()

    assert strategy.seen == []
    assert store.updates == []
    assert abandoned == []
    assert "No discovery strategy applies" in [e["event"] for e in logs]
    assert [e for e in logs if e["log_level"] in ("error", "critical")] == []

    stop.set()
    await task


@pytest.mark.asyncio
async def test_removed_key_releases_strategy_state(store: FakeUpstreamStore) -> None:
    strategy = RecordingStrategy()
    controller, abandoned = _controller(store, strategy)
    stop = asyncio.Event()
    task = await _sync(controller, stop)

    controller.queue.add("default/ghost")
    await controller.process_next_item()

    assert strategy.seen == []
    assert strategy.released == ["default/ghost"]
    assert abandoned == []

    stop.set()
    await task


@pytest.mark.asyncio
async def test_process_next_item_stops_after_shutdown(store: FakeUpstreamStore) -> None:
    controller, _ = _controller(store)

    controller.queue.shut_down()

    assert await controller.process_next_item() is False


@pytest.mark.asyncio
async def test_run_reconciles_until_stopped(store: FakeUpstreamStore) -> None:
    store.create(make_upstream("petstore"))
    strategy = RecordingStrategy()
    controller, _ = _controller(store, strategy)
    controller.workers = 2
    stop = asyncio.Event()

    task = asyncio.create_task(controller.run(stop))
    while not strategy.seen:
        await asyncio.sleep(0.005)
    stop.set()
    await asyncio.wait_for(task, timeout=1)

    assert [u.key for u in strategy.seen] == ["default/petstore"]
    assert controller.queue.shutting_down


@pytest.mark.asyncio
async def test_run_returns_when_stopped_before_sync(store: FakeUpstreamStore) -> None:
    controller, _ = _controller(store)
    stop = asyncio.Event()
    stop.set()

    await asyncio.wait_for(controller.run(stop), timeout=1)

    assert controller.queue.shutting_down
