import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from shiptrack.application.loaders import NOT_REQUESTED, RelationLoader, RequestLoaders
from shiptrack.infrastructure.db import database

pytestmark = pytest.mark.anyio


def _recording_loader(rows):
    calls = []

    async def fetch_many(keys):
        calls.append(list(keys))
        return [rows[k] for k in keys if k in rows]

    return RelationLoader("things", fetch_many), calls


async def test_concurrent_loads_share_one_batch():
    rows = {k: SimpleNamespace(id=k) for k in ("a", "b", "c")}
    loader, calls = _recording_loader(rows)
    results = await asyncio.gather(loader.load("a"), loader.load("b"), loader.load("a"), loader.load("c"))
    assert [r.id for r in results] == ["a", "b", "a", "c"]
    assert loader.batches == 1
    assert sorted(calls[0]) == ["a", "b", "c"]


async def test_results_are_memoized():
    rows = {"a": SimpleNamespace(id="a")}
    loader, calls = _recording_loader(rows)
    first = await loader.load("a")
    second = await loader.load("a")
    assert first is second
    assert len(calls) == 1


async def test_missing_and_null_keys():
    loader, calls = _recording_loader({})
    assert await loader.load(None) is None
    assert calls == []
    assert await loader.load("ghost") is None
    assert loader.resolved("ghost") is None
    assert loader.resolved("never-asked") is NOT_REQUESTED


async def test_load_many_dedupes_and_skips_nulls():
    rows = {k: SimpleNamespace(id=k) for k in ("a", "b")}
    loader, calls = _recording_loader(rows)
    found = await loader.load_many(["a", None, "b", "a", "x"])
    assert set(found) == {"a", "b", "x"}
    assert found["x"] is None
    assert len(calls) == 1 and len(calls[0]) == 3


async def test_failed_batch_resolves_every_key_to_none():
    async def broken(keys):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    loader = RelationLoader("things", broken)
    assert await asyncio.gather(loader.load("a"), loader.load("b")) == [None, None]
    assert loader.resolved("a") is None


async def test_forget_refetches():
    rows = {"a": SimpleNamespace(id="a", name="old")}
    loader, calls = _recording_loader(rows)
    await loader.load("a")
    rows["a"] = SimpleNamespace(id="a", name="new")
    loader.forget("a")
    assert (await loader.load("a")).name == "new"
    assert len(calls) == 2


async def test_forget_of_a_key_never_loaded_is_a_no_op():
    loader, calls = _recording_loader({"a": SimpleNamespace(id="a")})
    loader.forget("a")
    assert loader.resolved("a") is NOT_REQUESTED
    assert (await loader.load("a")).id == "a"
    assert len(calls) == 1


async def test_request_loaders_are_independent(factory):
    actor = await factory.user()
    first, second = RequestLoaders(database), RequestLoaders(database)
    assert (await first.users.load(actor.id)).email == actor.email
    assert second.users.resolved(actor.id) is NOT_REQUESTED
    assert second.users.batches == 0
