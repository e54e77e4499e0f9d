from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable, Optional


class TtlPolicy(str, Enum):
    """What a store does with the TTL passed to set()."""
    IGNORED = "ignored"      # dropped, with an advisory log line
    PERSISTED = "persisted"  # stored next to the value, never enforced
    ENFORCED = "enforced"    # native expiry in the backend


class Store(ABC):
    """
    Key-value contract every backend implements, so the facade can swap backends
    (memory, SQL, MongoDB, Redis) without changing callers.

    Values are plain JSON values. Operations raise only keyv.errors.StoreError kinds.
    """

    ttl_policy: TtlPolicy = TtlPolicy.IGNORED

    @abstractmethod
    async def initialize(self) -> None:
        """One-time setup: create schema/table when the backend needs one, otherwise nothing."""

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        """
        Return the stored value, or `default` if the key is absent.
        A stored JSON null comes back as None, so pass a sentinel as `default`
        to tell it apart from a miss.
        """

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Insert or replace the value under key. ttl is in seconds."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete key. Deleting an absent key is a no-op."""

    @abstractmethod
    async def remove_many(self, keys: Iterable[str]) -> None:
        """Delete every listed key that exists; absent keys are ignored."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete every key in this store's table / collection / namespace, and nothing else."""

    async def close(self) -> None:
        """Release connections this store created itself. Caller-supplied clients stay open."""
        return None
