import logging
from typing import Any, Iterable, List, Optional

from pydantic import Field, SkipValidation
from redis import asyncio as aioredis
from redis import exceptions as redis_errors

from keyv.config import REDIS_SCAN_COUNT
from keyv.errors import QueryError, SerializationError, StoreConnectionError
from keyv.schemas.options import RedisNamespace, StoreOptions

from .codec import decode_value, encode_value
from .store import Store, TtlPolicy

logger = logging.getLogger(__name__)


class RedisStore(Store):
    """
    Store backed by a Redis server. The only backend with native expiry: a TTL passed
    to set() (or the store's default_ttl) becomes the key's EX. A TTL of 0 means no expiry.

    With a namespace every key is stored as "<namespace>:<key>" and clear() deletes
    only that prefix; without one, clear() flushes the whole logical database.
    """
    ttl_policy = TtlPolicy.ENFORCED

    def __init__(
        self,
        client: aioredis.Redis,
        namespace: Optional[str] = None,
        default_ttl: Optional[int] = None,
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._owns_client = owns_client
        self.namespace = namespace
        self.default_ttl = default_ttl

    @property
    def client(self) -> aioredis.Redis:
        return self._client

    def _key(self, key: str) -> str:
        if self.namespace:
            return f"{self.namespace}:{key}"
        return key

    async def initialize(self) -> None:
        # No schema; just make sure the server answers.
        try:
            await self._client.ping()
        except (redis_errors.ConnectionError, redis_errors.TimeoutError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        except redis_errors.RedisError as ex:
            raise QueryError("initialize", str(ex)) from ex

    async def get(self, key: str, default: Any = None) -> Any:
        try:
            raw = await self._client.get(self._key(key))
        except (redis_errors.ConnectionError, redis_errors.TimeoutError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        except redis_errors.RedisError as ex:
            raise QueryError("get", str(ex)) from ex
        except UnicodeDecodeError as ex:
            raise SerializationError(f"Stored value for key {key!r} is not valid UTF-8") from ex
        if raw is None:
            return default
        return decode_value(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if ttl is None:
            ttl = self.default_ttl
        payload = encode_value(value)
        try:
            if ttl:
                await self._client.set(self._key(key), payload, ex=ttl)
            else:
                await self._client.set(self._key(key), payload)
        except (redis_errors.ConnectionError, redis_errors.TimeoutError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        except redis_errors.RedisError as ex:
            raise QueryError("set", str(ex)) from ex

    async def remove(self, key: str) -> None:
        await self._delete("remove", [self._key(key)])

    async def remove_many(self, keys: Iterable[str]) -> None:
        namespaced = [self._key(k) for k in keys]
        if namespaced:
            await self._delete("remove_many", namespaced)

    async def clear(self) -> None:
        try:
            if not self.namespace:
                await self._client.flushdb()
                return
            batch: List[Any] = []
            async for found in self._client.scan_iter(match=f"{self.namespace}:*", count=REDIS_SCAN_COUNT):
                batch.append(found)
                if len(batch) >= REDIS_SCAN_COUNT:
                    await self._client.delete(*batch)
                    batch = []
            if batch:
                await self._client.delete(*batch)
        except (redis_errors.ConnectionError, redis_errors.TimeoutError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        except redis_errors.RedisError as ex:
            raise QueryError("clear", str(ex)) from ex
        except UnicodeDecodeError as ex:
            raise SerializationError(f"Key in namespace {self.namespace!r} is not valid UTF-8") from ex

    async def _delete(self, operation: str, keys: List[str]) -> None:
        try:
            await self._client.delete(*keys)
        except (redis_errors.ConnectionError, redis_errors.TimeoutError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        except redis_errors.RedisError as ex:
            raise QueryError(operation, str(ex)) from ex

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class RedisStoreBuilder(StoreOptions):
    """
    Builds a RedisStore from a URI or an existing redis.asyncio client.

        store = await RedisStoreBuilder(uri="redis://localhost:6379/0", namespace="sessions",
                                        default_ttl=3600).build()
    """
    # Any client exposing the redis.asyncio.Redis API.
    client: SkipValidation[Optional[aioredis.Redis]] = Field(None, description="Existing client; wins over uri.")
    namespace: Optional[RedisNamespace] = Field(None, description="Key prefix isolating this store's keys.")  # pyright: ignore[reportInvalidTypeForm]
    default_ttl: Optional[int] = Field(None, ge=0, description="Expiry in seconds for set() calls without a TTL.")

    def connection_handle(self) -> Optional[aioredis.Redis]:
        return self.client

    async def build(self) -> RedisStore:
        if self.client is not None:
            return RedisStore(self.client, self.namespace, self.default_ttl)
        try:
            client = aioredis.Redis.from_url(self.uri, decode_responses=True)
        except (ValueError, redis_errors.RedisError) as ex:
            raise StoreConnectionError(str(ex)) from ex
        logger.info("Redis store client created (namespace=%s, default_ttl=%s)", self.namespace, self.default_ttl)
        return RedisStore(client, self.namespace, self.default_ttl, owns_client=True)
