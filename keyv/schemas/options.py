# keyv/schemas/options.py

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, constr, model_validator

from keyv.config import DEFAULT_NAMESPACE

# Identifier shapes accepted by the builders. Names are interpolated into SQL text
# or used as key prefixes / scan patterns, so anything outside these is rejected.
SqlIdentifier = constr(pattern=r"^[A-Za-z_][A-Za-z0-9_]*$", min_length=1, max_length=63)
MongoName = constr(pattern=r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$", min_length=1, max_length=120)
RedisNamespace = constr(pattern=r"^[A-Za-z0-9_.:-]+$", min_length=1, max_length=128)


class StoreOptions(BaseModel):
    """
    Common part of every store builder: where the connection comes from.

    Either `uri` or a pre-built connection handle (engine / client) must be given.
    A pre-built handle wins over `uri` and is shared, so the store never closes it.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    uri: Optional[str] = Field(None, description="Connection URI used when no pre-built handle is supplied.")

    def connection_handle(self) -> Optional[Any]:
        """The pre-built engine/client, if any. Overridden by each builder."""
        return None

    @model_validator(mode="after")
    def check_connection_source(self):
        if self.connection_handle() is None and not self.uri:
            raise ValueError(f"{type(self).__name__} requires either a URI or an existing client/pool to be set")
        return self


def resolve_name(value: Optional[str], option: str, log: logging.Logger) -> str:
    """Return `value`, or the configured default name with a warning diagnostic when unset."""
    if value is not None:
        return value
    log.warning(
        "%s not set, using default %r",
        option,
        DEFAULT_NAMESPACE,
        extra={"option": option, "default": DEFAULT_NAMESPACE},
    )
    return DEFAULT_NAMESPACE
