import pytest

from conftest import FakeUpstreamStore, make_upstream
from function_discovery.discovery.diff import FunctionUpdater, functions_changed
from function_discovery.models.upstream import Function


def _identity(value: str) -> str:
    return value


def test_reordering_is_not_a_change() -> None:
    assert not functions_changed(["a", "b", "c"], ["c", "a", "b"], _identity)


def test_multiplicity_is_a_change() -> None:
    assert functions_changed(["a", "a", "b"], ["a", "b", "b"], _identity)
    assert functions_changed(["a"], ["a", "a"], _identity)


def test_added_and_removed_functions_are_changes() -> None:
    assert functions_changed([], ["a"], _identity)
    assert functions_changed(["a", "b"], ["a"], _identity)
    assert not functions_changed([], [], _identity)


@pytest.mark.asyncio
async def test_updater_writes_changed_functions_once(store: FakeUpstreamStore) -> None:
    upstream = store.create(make_upstream("lambdas", type="aws", functions=["old:1"]))
    updater = FunctionUpdater(store)

    result = await updater.apply(upstream, [Function(name="new:1"), Function(name="new:2")])

    assert [f.name for f in result.functions] == ["new:1", "new:2"]
    assert len(store.updates) == 1
    assert [f.name for f in upstream.functions] == ["old:1"]


@pytest.mark.asyncio
async def test_updater_skips_unchanged_functions(store: FakeUpstreamStore) -> None:
    upstream = store.create(make_upstream("lambdas", type="aws", functions=["a", "b"]))
    updater = FunctionUpdater(store)

    assert await updater.apply(upstream, [Function(name="b"), Function(name="a")]) is None
    assert store.updates == []


@pytest.mark.asyncio
async def test_updater_is_idempotent(store: FakeUpstreamStore) -> None:
    upstream = store.create(make_upstream("lambdas", type="aws"))
    updater = FunctionUpdater(store)
    functions = [Function(name="a")]

    updated = await updater.apply(upstream, functions)
    assert await updater.apply(updated, functions) is None

    assert len(store.updates) == 1
