import logging
from typing import Any, Dict, Iterable, Optional

from pydantic import Field, model_validator
from sqlalchemy import bindparam, text
from sqlalchemy.exc import DisconnectionError, InterfaceError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine

from keyv.database import create_engine
from keyv.errors import QueryError, StoreConnectionError
from keyv.schemas.options import SqlIdentifier, StoreOptions, resolve_name

from .codec import decode_value, encode_value
from .store import Store, TtlPolicy

logger = logging.getLogger(__name__)

# Column type of the primary key, per dialect.
_KEY_COLUMN_TYPES = {
    "postgresql": "VARCHAR",
    "sqlite": "TEXT",
    "mysql": "VARCHAR(255)",
    "mariadb": "VARCHAR(255)",
}
_TABLE_SUFFIXES = {
    "mysql": " CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci",
    "mariadb": " CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci",
}
_SCHEMA_DIALECTS = {"postgresql", "mysql", "mariadb"}


class SqlStore(Store):
    """
    Store backed by one table in a relational database, reached through an async
    SQLAlchemy engine. Works with PostgreSQL, SQLite and MySQL/MariaDB.

    Table layout: key (primary key), value (JSON text, NOT NULL) and, when
    persist_ttl is on, a ttl INTEGER column. TTL is never enforced.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        table_name: str,
        schema_name: Optional[str] = None,
        persist_ttl: bool = False,
        owns_engine: bool = False,
    ) -> None:
        dialect = engine.dialect.name
        if dialect not in _KEY_COLUMN_TYPES:
            raise ValueError(f"SqlStore does not support the {dialect!r} dialect")
        if schema_name and dialect not in _SCHEMA_DIALECTS:
            raise ValueError(f"SqlStore does not support a schema qualifier on {dialect!r}")

        self._engine = engine
        self._dialect = dialect
        self._owns_engine = owns_engine
        self.table_name = table_name
        self.schema_name = schema_name
        self.persist_ttl = persist_ttl
        self.ttl_policy = TtlPolicy.PERSISTED if persist_ttl else TtlPolicy.IGNORED

        quote = engine.dialect.identifier_preparer.quote
        self._table = quote(table_name)
        if schema_name:
            self._table = f"{quote(schema_name)}.{self._table}"
        self._key = quote("key")
        self._value = quote("value")
        self._ttl = quote("ttl")
        self._build_statements()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def qualified_table_name(self) -> str:
        if self.schema_name:
            return f"{self.schema_name}.{self.table_name}"
        return self.table_name

    def _build_statements(self) -> None:
        t, k, v, ttl = self._table, self._key, self._value, self._ttl
        ttl_column = f", {ttl} INTEGER" if self.persist_ttl else ""
        self._create_table_sql = (
            f"CREATE TABLE IF NOT EXISTS {t} ("
            f"{k} {_KEY_COLUMN_TYPES[self._dialect]} PRIMARY KEY, "
            f"{v} TEXT NOT NULL{ttl_column})"
            f"{_TABLE_SUFFIXES.get(self._dialect, '')}"
        )

        columns, params = [k, v], [":key", ":value"]
        if self.persist_ttl:
            columns.append(ttl)
            params.append(":ttl")
        insert = f"INSERT INTO {t} ({', '.join(columns)}) VALUES ({', '.join(params)})"
        updated = columns[1:]
        if self._dialect in ("mysql", "mariadb"):
            assignments = ", ".join(f"{c} = VALUES({c})" for c in updated)
            upsert = f"{insert} ON DUPLICATE KEY UPDATE {assignments}"
        else:
            assignments = ", ".join(f"{c} = EXCLUDED.{c}" for c in updated)
            upsert = f"{insert} ON CONFLICT ({k}) DO UPDATE SET {assignments}"

        self._select = text(f"SELECT {v} FROM {t} WHERE {k} = :key")
        self._upsert = text(upsert)
        self._delete = text(f"DELETE FROM {t} WHERE {k} = :key")
        self._delete_many = text(f"DELETE FROM {t} WHERE {k} IN :keys").bindparams(
            bindparam("keys", expanding=True)
        )
        self._delete_all = text(f"DELETE FROM {t}")

    async def _run(self, operation: str, statement, params: Optional[Dict[str, Any]] = None, fetch: bool = False):
        """Execute one statement in its own transaction, mapping driver errors to StoreError kinds."""
        # Any failure to check a connection out of the pool is a connection error.
        try:
            conn = await self._engine.connect()
        except (SQLAlchemyError, OSError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        try:
            async with conn.begin():
                result = await conn.execute(statement, params or {})
                if fetch:
                    return result.scalar_one_or_none()
                return None
        except (DisconnectionError, InterfaceError, PoolTimeoutError, OSError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        except SQLAlchemyError as ex:
            if getattr(ex, "connection_invalidated", False):
                raise StoreConnectionError(str(ex)) from ex
            raise QueryError(operation, str(ex)) from ex
        finally:
            await conn.close()

    async def initialize(self) -> None:
        if self.schema_name:
            await self._run(
                f"create schema {self.schema_name!r}",
                text(f"CREATE SCHEMA IF NOT EXISTS {self._engine.dialect.identifier_preparer.quote(self.schema_name)}"),
            )
        await self._run(f"create table {self.qualified_table_name!r}", text(self._create_table_sql))

    async def get(self, key: str, default: Any = None) -> Any:
        raw = await self._run("get", self._select, {"key": key}, fetch=True)
        if raw is None:
            return default
        return decode_value(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        params: Dict[str, Any] = {"key": key, "value": encode_value(value)}
        if self.persist_ttl:
            params["ttl"] = ttl
        elif ttl is not None:
            logger.warning("SQL store does not support TTL; ignoring ttl=%s for table %s", ttl, self.qualified_table_name)
        await self._run("set", self._upsert, params)

    async def remove(self, key: str) -> None:
        await self._run("remove", self._delete, {"key": key})

    async def remove_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        await self._run("remove_many", self._delete_many, {"keys": keys})

    async def clear(self) -> None:
        await self._run("clear", self._delete_all)

    async def close(self) -> None:
        if self._owns_engine:
            await self._engine.dispose()


class SqlStoreBuilder(StoreOptions):
    """
    Builds a SqlStore from a URI (the store then owns and disposes the engine)
    or from an existing AsyncEngine shared with the rest of the application.

        store = await SqlStoreBuilder(uri="postgresql+psycopg://user:pw@localhost/db",
                                      table_name="sessions").build()
    """
    engine: Optional[AsyncEngine] = Field(None, description="Existing async engine; wins over uri.")
    table_name: Optional[SqlIdentifier] = Field(None, description="Table holding the key-value rows.")  # pyright: ignore[reportInvalidTypeForm]
    schema_name: Optional[SqlIdentifier] = Field(None, description="Schema (PostgreSQL) or database (MySQL) qualifier.")  # pyright: ignore[reportInvalidTypeForm]
    persist_ttl: bool = Field(False, description="Store the TTL of each write in a ttl column (never enforced).")
    echo: Optional[bool] = Field(None, description="Echo SQL on an engine built from uri; defaults to SQL_ECHO.")

    def connection_handle(self) -> Optional[AsyncEngine]:
        return self.engine

    @model_validator(mode="after")
    def check_schema_dialect(self):
        if self.schema_name and self.engine is not None and self.engine.dialect.name not in _SCHEMA_DIALECTS:
            raise ValueError(f"schema_name is not supported on {self.engine.dialect.name!r}")
        return self

    async def build(self) -> SqlStore:
        table_name = resolve_name(self.table_name, "table_name", logger)
        if self.engine is not None:
            return SqlStore(self.engine, table_name, self.schema_name, self.persist_ttl)

        try:
            engine = create_engine(self.uri, echo=self.echo)
        except (SQLAlchemyError, ImportError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        try:
            async with engine.connect():
                pass
        except (SQLAlchemyError, OSError) as ex:
            await engine.dispose()
            raise StoreConnectionError(str(ex)) from ex

        logger.info("SQL store connected (dialect=%s, table=%s)", engine.dialect.name, table_name)
        try:
            return SqlStore(engine, table_name, self.schema_name, self.persist_ttl, owns_engine=True)
        except ValueError:
            await engine.dispose()
            raise
