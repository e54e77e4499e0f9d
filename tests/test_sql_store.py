# tests/test_sql_store.py
import logging

import pytest
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from keyv.errors import QueryError, SerializationError, StoreConnectionError
from keyv.keyv import Keyv
from keyv.store.sql import SqlStore, SqlStoreBuilder
from keyv.store.store import TtlPolicy


async def _table_names(engine):
    async with engine.connect() as conn:
        rows = await conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'"))
        return {r[0] for r in rows}


async def test_reference_scenario_on_sqlite(sql_store, keyv_scenario):
    await keyv_scenario(await Keyv.try_new(sql_store))


async def test_initialize_creates_table_and_is_repeatable(sql_store):
    await sql_store.initialize()
    assert "kv" in await _table_names(sql_store.engine)


async def test_rows_hold_json_text(sql_store):
    await sql_store.set("k", {"a": [1, "two"]})
    async with sql_store.engine.connect() as conn:
        row = (await conn.execute(text("SELECT key, value FROM kv"))).one()
    assert row == ("k", '{"a":[1,"two"]}')


async def test_upsert_keeps_one_row_per_key(sql_store):
    await sql_store.set("k", 1)
    await sql_store.set("k", 2)
    async with sql_store.engine.connect() as conn:
        count = (await conn.execute(text("SELECT COUNT(*) FROM kv"))).scalar_one()
    assert count == 1
    assert await sql_store.get("k") == 2


async def test_remove_and_remove_many_tolerate_absent_keys(sql_store):
    await sql_store.set("a", 1)
    await sql_store.set("b", 2)
    await sql_store.set("c", 3)
    await sql_store.remove("missing")
    await sql_store.remove_many([])
    await sql_store.remove_many(["a", "c", "missing"])
    assert await sql_store.get("a") is None
    assert await sql_store.get("b") == 2
    assert await sql_store.get("c") is None


async def test_clear_only_touches_own_table(sql_store):
    other = await SqlStoreBuilder(engine=sql_store.engine, table_name="other").build()
    await other.initialize()
    await sql_store.set("k", "mine")
    await other.set("k", "theirs")

    await sql_store.clear()

    assert await sql_store.get("k") is None
    assert await other.get("k") == "theirs"


async def test_ttl_is_ignored_with_a_warning(sql_store, caplog):
    assert sql_store.ttl_policy is TtlPolicy.IGNORED
    with caplog.at_level(logging.WARNING, logger="keyv.store.sql"):
        await sql_store.set("k", "v", ttl=30)
    assert await sql_store.get("k") == "v"
    assert "does not support TTL" in caplog.text


async def test_persisted_ttl_is_stored_but_not_enforced(sqlite_url):
    store = await SqlStoreBuilder(uri=sqlite_url, table_name="kv_ttl", persist_ttl=True).build()
    try:
        await store.initialize()
        assert store.ttl_policy is TtlPolicy.PERSISTED
        await store.set("k", "v", ttl=30)
        await store.set("no-ttl", "v")
        async with store.engine.connect() as conn:
            rows = dict((await conn.execute(text("SELECT key, ttl FROM kv_ttl"))).all())
        assert rows == {"k": 30, "no-ttl": None}
        assert await store.get("k") == "v"
    finally:
        await store.close()


async def test_corrupt_value_raises_serialization_error(sql_store):
    async with sql_store.engine.begin() as conn:
        await conn.execute(text("INSERT INTO kv (key, value) VALUES ('bad', 'not json')"))
    with pytest.raises(SerializationError):
        await sql_store.get("bad")


async def test_missing_table_is_a_query_error(sqlite_url):
    store = await SqlStoreBuilder(uri=sqlite_url, table_name="never_created").build()
    try:
        with pytest.raises(QueryError) as exc:
            await store.get("k")
        assert exc.value.operation == "get"
    finally:
        await store.close()


async def test_shared_engine_survives_store_close(sql_store):
    borrowed = await SqlStoreBuilder(engine=sql_store.engine, table_name="kv").build()
    await borrowed.close()
    await sql_store.set("still", "open")
    assert await sql_store.get("still") == "open"


async def test_default_table_name_is_used_with_a_warning(sqlite_url, caplog):
    with caplog.at_level(logging.WARNING, logger="keyv.store.sql"):
        store = await SqlStoreBuilder(uri=sqlite_url).build()
    try:
        assert store.table_name == "keyv"
        assert "table_name not set" in caplog.text
        record = next(r for r in caplog.records if "table_name not set" in r.getMessage())
        assert record.option == "table_name"
    finally:
        await store.close()


def test_builder_requires_uri_or_engine():
    with pytest.raises(ValueError):
        SqlStoreBuilder(table_name="kv")


@pytest.mark.parametrize("name", ["kv; DROP TABLE users", "1kv", "kv-data", "kv.data", "", "x" * 64])
def test_builder_rejects_unsafe_identifiers(name):
    with pytest.raises(ValidationError):
        SqlStoreBuilder(uri="sqlite+aiosqlite://", table_name=name)
    with pytest.raises(ValidationError):
        SqlStoreBuilder(uri="sqlite+aiosqlite://", table_name="kv", schema_name=name)


async def test_schema_is_rejected_on_sqlite(sql_store):
    with pytest.raises(ValueError):
        SqlStoreBuilder(engine=sql_store.engine, table_name="kv", schema_name="app")


async def test_unknown_dialect_url_is_a_connection_error():
    with pytest.raises(StoreConnectionError):
        await SqlStoreBuilder(uri="nosuchdb+driver://localhost/db", table_name="kv").build()


async def test_unreachable_database_is_a_connection_error(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'missing-dir' / 'keyv.db'}"
    with pytest.raises(StoreConnectionError):
        await SqlStoreBuilder(uri=url, table_name="kv").build()


async def test_postgres_statements_use_schema_and_on_conflict():
    engine = create_async_engine("postgresql+psycopg://user:pw@localhost:5432/db")
    try:
        store = SqlStore(engine, "kv", schema_name="app", persist_ttl=True)
        assert store.qualified_table_name == "app.kv"
        assert store._create_table_sql.startswith("CREATE TABLE IF NOT EXISTS app.kv (")
        assert "VARCHAR PRIMARY KEY" in store._create_table_sql
        assert "ttl INTEGER" in store._create_table_sql
        assert "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, ttl = EXCLUDED.ttl" in str(store._upsert)
    finally:
        await engine.dispose()


async def test_mysql_statements_use_on_duplicate_key():
    pytest.importorskip("aiomysql")
    engine = create_async_engine("mysql+aiomysql://user:pw@localhost:3306/db")
    try:
        store = SqlStore(engine, "kv")
        assert "`key` VARCHAR(255) PRIMARY KEY" in store._create_table_sql
        assert "utf8mb4" in store._create_table_sql
        assert "ON DUPLICATE KEY UPDATE" in str(store._upsert)
    finally:
        await engine.dispose()


async def test_stored_null_is_present(sql_store):
    kv = Keyv(sql_store)
    await kv.set("k", None)
    assert await kv.has("k") is True
    assert await kv.get("k", "fallback") is None
    assert await kv.get("never-set", "fallback") == "fallback"


async def test_unopenable_sqlite_file_is_a_connection_error(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'no-such-dir' / 'kv.db'}")
    try:
        store = await SqlStoreBuilder(engine=engine, table_name="kv").build()
        with pytest.raises(StoreConnectionError):
            await store.get("k")
        with pytest.raises(StoreConnectionError):
            await store.initialize()
    finally:
        await engine.dispose()


async def test_refused_postgres_connection_is_a_connection_error():
    engine = create_async_engine("postgresql+psycopg://user:pw@127.0.0.1:1/db")
    try:
        store = await SqlStoreBuilder(engine=engine, table_name="kv").build()
        with pytest.raises(StoreConnectionError):
            await store.set("k", 1)
    finally:
        await engine.dispose()
