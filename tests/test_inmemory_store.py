# tests/test_inmemory_store.py
import pytest

from keyv.errors import SerializationError
from keyv.store.inmemory import InMemoryStore
from keyv.store.store import TtlPolicy


async def test_round_trip_and_last_write_wins():
    store = InMemoryStore()
    await store.set("k", {"v": 1})
    await store.set("k", {"v": 2})
    assert await store.get("k") == {"v": 2}
    assert len(store) == 1


async def test_missing_key_reads_as_none():
    assert await InMemoryStore().get("nope") is None


async def test_remove_absent_key_is_a_noop():
    store = InMemoryStore()
    await store.remove("nope")
    await store.remove_many(["nope", "also-nope"])
    assert len(store) == 0


async def test_remove_many_leaves_other_keys():
    store = InMemoryStore()
    for k in ("a", "b", "c"):
        await store.set(k, k)
    await store.remove_many(["a", "c", "zzz"])
    assert await store.get("b") == "b"
    assert len(store) == 1


async def test_ttl_is_ignored(caplog):
    store = InMemoryStore()
    assert store.ttl_policy is TtlPolicy.IGNORED
    with caplog.at_level("DEBUG", logger="keyv.store.inmemory"):
        await store.set("k", "v", ttl=1)
    assert await store.get("k") == "v"
    assert "ignores TTL" in caplog.text


async def test_stored_value_is_a_snapshot():
    store = InMemoryStore()
    value = {"items": [1]}
    await store.set("k", value)
    value["items"].append(2)
    assert await store.get("k") == {"items": [1]}


async def test_instances_do_not_share_data():
    first, second = InMemoryStore(), InMemoryStore()
    await first.set("k", 1)
    await second.clear()
    assert await first.get("k") == 1
    assert await second.get("k") is None


async def test_unencodable_value_raises():
    with pytest.raises(SerializationError):
        await InMemoryStore().set("k", {1, 2})


async def test_nan_is_not_valid_json():
    with pytest.raises(SerializationError):
        await InMemoryStore().set("k", float("nan"))
