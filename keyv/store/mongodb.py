import logging
from typing import Any, Iterable, Optional

from pydantic import Field, SkipValidation
from pymongo import AsyncMongoClient
from pymongo.errors import ConfigurationError, ConnectionFailure, PyMongoError

from keyv.config import MONGO_SERVER_SELECTION_TIMEOUT_MS
from keyv.errors import QueryError, SerializationError, StoreConnectionError
from keyv.schemas.options import MongoName, StoreOptions, resolve_name

from .codec import decode_value, encode_value
from .store import Store, TtlPolicy

logger = logging.getLogger(__name__)


class MongoStore(Store):
    """
    Store backed by one MongoDB collection of {key, value} documents, value being JSON text.
    Databases and collections are created by the server on first write.
    """
    ttl_policy = TtlPolicy.IGNORED

    def __init__(
        self,
        client: AsyncMongoClient,
        database_name: str,
        collection_name: str,
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._owns_client = owns_client
        self.database_name = database_name
        self.collection_name = collection_name
        self._collection = client[database_name][collection_name]

    @property
    def client(self) -> AsyncMongoClient:
        return self._client

    async def initialize(self) -> None:
        return None

    async def get(self, key: str, default: Any = None) -> Any:
        try:
            doc = await self._collection.find_one({"key": key})
        except ConnectionFailure as ex:
            raise StoreConnectionError(str(ex)) from ex
        except PyMongoError as ex:
            raise QueryError("get", str(ex)) from ex
        if doc is None:
            return default
        raw = doc.get("value")
        if not isinstance(raw, str):
            raise SerializationError(f"Document for key {key!r} has no JSON text value")
        return decode_value(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if ttl is not None:
            logger.warning("MongoDB store does not support TTL; ignoring ttl=%s for %s.%s",
                           ttl, self.database_name, self.collection_name)
        doc = {"key": key, "value": encode_value(value)}
        try:
            result = await self._collection.replace_one({"key": key}, doc, upsert=True)
        except ConnectionFailure as ex:
            raise StoreConnectionError(str(ex)) from ex
        except PyMongoError as ex:
            raise QueryError("set", str(ex)) from ex
        if result.upserted_id is not None:
            logger.info("A new document was upserted (key=%s)", key)

    async def remove(self, key: str) -> None:
        # delete_many: no unique index on key, so racing upserts may have left duplicates.
        await self._delete_many("remove", {"key": key})

    async def remove_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        await self._delete_many("remove_many", {"key": {"$in": keys}})

    async def clear(self) -> None:
        await self._delete_many("clear", {})

    async def _delete_many(self, operation: str, query: dict) -> None:
        try:
            await self._collection.delete_many(query)
        except ConnectionFailure as ex:
            raise StoreConnectionError(str(ex)) from ex
        except PyMongoError as ex:
            raise QueryError(operation, str(ex)) from ex

    async def close(self) -> None:
        if self._owns_client:
            await self._client.close()


class MongoStoreBuilder(StoreOptions):
    """
    Builds a MongoStore from a URI or an existing AsyncMongoClient.
    Missing database/collection names fall back to KEYV_DEFAULT_NAMESPACE.
    """
    # Any client exposing the pymongo AsyncMongoClient API.
    client: SkipValidation[Optional[AsyncMongoClient]] = Field(None, description="Existing client; wins over uri.")
    database_name: Optional[MongoName] = Field(None, description="Database holding the collection.")  # pyright: ignore[reportInvalidTypeForm]
    collection_name: Optional[MongoName] = Field(None, description="Collection holding the key-value documents.")  # pyright: ignore[reportInvalidTypeForm]

    def connection_handle(self) -> Optional[AsyncMongoClient]:
        return self.client

    async def build(self) -> MongoStore:
        database_name = resolve_name(self.database_name, "database_name", logger)
        collection_name = resolve_name(self.collection_name, "collection_name", logger)
        if self.client is not None:
            return MongoStore(self.client, database_name, collection_name)

        try:
            client = AsyncMongoClient(self.uri, serverSelectionTimeoutMS=MONGO_SERVER_SELECTION_TIMEOUT_MS)
        except (ConfigurationError, ValueError, TypeError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        logger.info("MongoDB store client created (database=%s, collection=%s)", database_name, collection_name)
        return MongoStore(client, database_name, collection_name, owns_client=True)
