import logging
from threading import RLock
from typing import Any, Dict, Iterable, Optional

from .codec import decode_value, encode_value
from .store import Store, TtlPolicy

logger = logging.getLogger(__name__)


class InMemoryStore(Store):
    """
    Process-local store backed by a dict. Nothing is persisted.
    Values are kept in their encoded JSON form so callers mutating an object after
    set() cannot change what get() returns.
    The lock is held only around the dict access, never across an await.
    """
    ttl_policy = TtlPolicy.IGNORED

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = RLock()

    async def initialize(self) -> None:
        return None

    async def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return default
        return decode_value(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if ttl is not None:
            logger.debug("InMemoryStore ignores TTL (key=%s, ttl=%s)", key, ttl)
        raw = encode_value(value)
        with self._lock:
            self._data[key] = raw

    async def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    async def remove_many(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    async def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
