# tests/conftest.py
import pytest

from keyv.keyv import Keyv
from keyv.store.sql import SqlStoreBuilder


async def _run_scenario(kv: Keyv) -> None:
    """The reference walk-through every backend must pass unchanged."""
    await kv.set("number", 42)
    await kv.set("number", 10)
    await kv.set("array", ["hola", "test"])
    await kv.set("string", "life long")

    assert await kv.get("number") == 10
    assert await kv.get("array") == ["hola", "test"]
    assert await kv.get("string") == "life long"

    await kv.remove("number")
    assert await kv.get("number") is None

    await kv.set("key0", "value0")
    await kv.remove_many(["string", "array"])
    assert await kv.get("string") is None
    assert await kv.get("array") is None
    assert await kv.get("key0") == "value0"

    await kv.set("key1", "value1")
    await kv.set("key2", "value2")
    await kv.clear()
    for key in ("key0", "key1", "key2"):
        assert await kv.get(key) is None


@pytest.fixture
def keyv_scenario():
    return _run_scenario


@pytest.fixture
def sqlite_url(tmp_path):
    """A file-backed SQLite database; ':memory:' would give every pooled connection its own DB."""
    return f"sqlite+aiosqlite:///{tmp_path / 'keyv.db'}"


@pytest.fixture
async def sql_store(sqlite_url):
    store = await SqlStoreBuilder(uri=sqlite_url, table_name="kv").build()
    await store.initialize()
    try:
        yield store
    finally:
        await store.close()
