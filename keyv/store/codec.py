import json
from typing import Any, Union

from pydantic_core import PydanticSerializationError, to_jsonable_python

from keyv.errors import SerializationError


def to_json_value(value: Any) -> Any:
    """
    Convert a caller value (pydantic model, dataclass, datetime, UUID, plain JSON types...)
    into plain JSON types: dict, list, str, int, float, bool or None.
    """
    try:
        return to_jsonable_python(value)
    except PydanticSerializationError as ex:
        raise SerializationError(f"Value of type {type(value).__name__} is not JSON serializable: {ex}") from ex


def encode_value(value: Any) -> str:
    """Serialize a JSON value to the compact text form every backend stores."""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as ex:
        raise SerializationError(f"Failed to encode value: {ex}") from ex


def decode_value(raw: Union[str, bytes]) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as ex:
        raise SerializationError(f"Stored value is not valid JSON: {ex}") from ex
