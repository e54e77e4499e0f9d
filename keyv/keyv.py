# keyv/keyv.py

from typing import Any, Iterable

from keyv.store.codec import to_json_value
from keyv.store.inmemory import InMemoryStore
from keyv.store.store import Store

# Miss marker no stored JSON value can equal.
_MISSING = object()


def _check_key(key: str) -> None:
    if not isinstance(key, str) or not key:
        raise ValueError("keys must be non-empty strings")


class Keyv:
    """
    Caller-facing key-value facade over exactly one Store.

    Build it with `await Keyv.try_new(store)` (initializes the store once) or
    `Keyv.default()` for a zero-configuration in-memory instance. One Keyv can be
    shared by any number of concurrent tasks; they all use the store's single
    connection/pool.

        kv = await Keyv.try_new(await RedisStoreBuilder(uri="redis://localhost:6379").build())
        await kv.set("user:1", {"name": "Ada"})
        await kv.get("user:1")   # {'name': 'Ada'}

    Values go in as anything pydantic can dump to JSON (plain JSON types, models,
    dataclasses, datetimes, UUIDs...) and come back as plain JSON types; turning
    them back into the caller's own type is up to the caller.
    """

    def __init__(self, store: Store) -> None:
        # Use try_new() unless the store is already initialized.
        self._store = store

    @classmethod
    async def try_new(cls, store: Store) -> "Keyv":
        """Initialize `store` and wrap it. Fails with the store's error if initialization fails."""
        await store.initialize()
        return cls(store)

    @classmethod
    def default(cls) -> "Keyv":
        """Facade over a fresh InMemoryStore (which needs no initialization)."""
        return cls(InMemoryStore())

    @property
    def store(self) -> Store:
        return self._store

    async def set(self, key: str, value: Any) -> None:
        """Store `value` under `key`; the store's default TTL (if any) applies."""
        _check_key(key)
        await self._store.set(key, to_json_value(value), None)

    async def set_with_ttl(self, key: str, value: Any, ttl: int) -> None:
        """Store `value` with a TTL in seconds. Only stores with an ENFORCED ttl_policy expire it."""
        _check_key(key)
        if ttl < 0:
            raise ValueError("ttl must be a non-negative number of seconds")
        await self._store.set(key, to_json_value(value), ttl)

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Return the value under `key`, or `default` when the key is absent.

        A stored JSON null reads back as None; pass your own sentinel as `default`
        when None must not be mistaken for a miss:

            missing = object()
            if await kv.get("k", missing) is missing: ...
        """
        _check_key(key)
        return await self._store.get(key, default)

    async def has(self, key: str) -> bool:
        """True if a value (JSON null included) is stored under `key`."""
        return await self.get(key, _MISSING) is not _MISSING

    async def remove(self, key: str) -> None:
        _check_key(key)
        await self._store.remove(key)

    async def remove_many(self, keys: Iterable[str]) -> None:
        if isinstance(keys, str):
            raise ValueError("remove_many expects an iterable of keys, not a single string")
        keys = list(keys)
        for key in keys:
            _check_key(key)
        await self._store.remove_many(keys)

    async def clear(self) -> None:
        await self._store.clear()

    async def close(self) -> None:
        await self._store.close()

    async def __aenter__(self) -> "Keyv":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
