import asyncio
import threading
from typing import List, Tuple
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeUpstreamStore, make_upstream
from function_discovery.clients.kubernetes.k8s_client import KubernetesClient, KubernetesUpstreamStore
from function_discovery.controller.informer import UpstreamInformer
from function_discovery.core.exceptions import WatchExpiredException


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout=timeout)


class _Recorder:
    def __init__(self, informer: UpstreamInformer):
        self.events: List[Tuple[str, str]] = []
        informer.add_handler(
            on_add=lambda u: self.events.append(("add", u.key)),
            on_update=lambda old, new: self.events.append(("update", new.key)),
            on_delete=lambda u: self.events.append(("delete", u.key)),
        )


@pytest.mark.asyncio
async def test_informer_syncs_initial_list(store: FakeUpstreamStore) -> None:
    store.create(make_upstream("petstore"))
    informer = UpstreamInformer(store, resync_period=0)
    recorder = _Recorder(informer)
    stop = asyncio.Event()

    task = asyncio.create_task(informer.run(stop))
    assert await asyncio.wait_for(informer.wait_for_cache_sync(stop), timeout=1)

    assert informer.has_synced()
    assert informer.list_keys() == ["default/petstore"]
    upstream, exists = informer.get_by_key("default/petstore")
    assert exists and upstream.name == "petstore"
    assert recorder.events == [("add", "default/petstore")]

    stop.set()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_informer_follows_watch_events(store: FakeUpstreamStore) -> None:
    informer = UpstreamInformer(store, resync_period=0)
    recorder = _Recorder(informer)
    stop = asyncio.Event()
    task = asyncio.create_task(informer.run(stop))
    await asyncio.wait_for(informer.wait_for_cache_sync(stop), timeout=1)

    created = store.create(make_upstream("petstore"))
    await _wait_for(lambda: len(recorder.events) == 1)

    created.annotations["team"] = "payments"
    await store.update(created)
    await _wait_for(lambda: len(recorder.events) == 2)
    upstream, _ = informer.get_by_key("default/petstore")
    assert upstream.annotations == {"team": "payments"}

    await store.delete("default/petstore")
    await _wait_for(lambda: len(recorder.events) == 3)

    assert recorder.events == [
        ("add", "default/petstore"),
        ("update", "default/petstore"),
        ("delete", "default/petstore"),
    ]
    assert informer.get_by_key("default/petstore") == (None, False)

    stop.set()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_informer_relists_when_watch_expires(store: FakeUpstreamStore) -> None:
    store.create(make_upstream("petstore"))
    store.watch_errors.append(WatchExpiredException("too old resource version"))
    informer = UpstreamInformer(store, resync_period=0)
    recorder = _Recorder(informer)
    stop = asyncio.Event()

    task = asyncio.create_task(informer.run(stop))
    await _wait_for(lambda: store.list_calls == 2)

    # The relist re-announces what is already cached as an update
    assert recorder.events == [("add", "default/petstore"), ("update", "default/petstore")]

    stop.set()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_informer_retries_after_watch_failure(store: FakeUpstreamStore) -> None:
    store.watch_errors.append(ConnectionError("connection reset"))
    informer = UpstreamInformer(store, resync_period=0, retry_delay=0.01)
    stop = asyncio.Event()

    task = asyncio.create_task(informer.run(stop))
    await _wait_for(lambda: store.list_calls == 2)

    assert informer.has_synced()

    stop.set()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_informer_resync_reannounces_cached_upstreams(store: FakeUpstreamStore) -> None:
    store.create(make_upstream("petstore"))
    informer = UpstreamInformer(store, resync_period=0.02)
    recorder = _Recorder(informer)
    stop = asyncio.Event()

    task = asyncio.create_task(informer.run(stop))
    await _wait_for(lambda: ("update", "default/petstore") in recorder.events)

    stop.set()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_wait_for_cache_sync_returns_false_when_stopped(store: FakeUpstreamStore) -> None:
    informer = UpstreamInformer(store, resync_period=0)
    stop = asyncio.Event()
    stop.set()

    assert await asyncio.wait_for(informer.wait_for_cache_sync(stop), timeout=1) is False


@pytest.mark.asyncio
async def test_informer_syncs_past_malformed_custom_resources() -> None:
    k8s_client = KubernetesClient()
    k8s_client._connected = True
    k8s_client.custom_objects = MagicMock()
    k8s_client.custom_objects.list_namespaced_custom_object.return_value = {
        'metadata': {'resourceVersion': '7'},
        'items': [
            {
                'metadata': {'name': 'twins', 'namespace': 'gateway', 'resourceVersion': '5'},
                'spec': {'type': 'service', 'functions': [{'name': 'hello'}, {'name': 'hello'}]},
            },
            {
                'metadata': {'name': 'petstore', 'namespace': 'gateway', 'resourceVersion': '6'},
                'spec': {'type': 'service'},
            },
        ],
    }
    store = KubernetesUpstreamStore(k8s_client, "gloo.solo.io", "v1", "upstreams", namespace="gateway")
    informer = UpstreamInformer(store, resync_period=0)
    recorder = _Recorder(informer)
    stop = asyncio.Event()
    release = threading.Event()

    def quiet_stream(*args, **kwargs):
        release.wait(5)
        yield from ()

    try:
        with patch('function_discovery.clients.kubernetes.k8s_client.watch.Watch') as watch_cls:
            watch_cls.return_value.stream.side_effect = quiet_stream
            task = asyncio.create_task(informer.run(stop))
            assert await asyncio.wait_for(informer.wait_for_cache_sync(stop), timeout=1)

            assert informer.list_keys() == ["gateway/petstore"]
            assert recorder.events == [("add", "gateway/petstore")]

            stop.set()
            await asyncio.wait_for(task, timeout=1)
    finally:
        release.set()
