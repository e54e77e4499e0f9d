# keyv/errors.py
"""
Errors raised by keyv.

Every failure that crosses the Store boundary is one of the StoreError kinds below.
Driver exceptions are kept as __cause__ but never raised directly.
Misconfiguration (missing URI/client, bad identifier) raises ValueError instead.
"""
from typing import Optional


class KeyvError(Exception):
    """Base error for everything keyv raises."""

    def __init__(self, message: str, code: str = "KEYV_ERROR") -> None:
        self.code = code
        super().__init__(message)


class StoreError(KeyvError):
    """A store operation failed."""


class StoreConnectionError(StoreError):
    """Could not establish or reuse a connection to the backend."""

    def __init__(self, message: Optional[str] = None) -> None:
        detail = f": {message}" if message else ""
        super().__init__(f"Failed to connect to the database backend{detail}", code="CONNECTION_ERROR")


class SerializationError(StoreError):
    """A value could not be encoded to, or decoded from, JSON."""

    def __init__(self, message: str = "Error while serializing or deserializing data") -> None:
        super().__init__(message, code="SERIALIZATION_ERROR")


class QueryError(StoreError):
    """The backend rejected or failed to execute an operation."""

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        detail = f": {message}" if message else ""
        super().__init__(f"Database query error during {operation}{detail}", code="QUERY_ERROR")


class NotFoundError(StoreError):
    """Explicit absence. Store reads return None instead of raising this."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"The requested key was not found: {key}", code="NOT_FOUND")


class UnknownError(StoreError):
    def __init__(self, message: str = "An unknown error has occurred") -> None:
        super().__init__(message, code="UNKNOWN")
