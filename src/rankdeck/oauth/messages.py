# Cross-window messages exchanged between the OAuth popup and its opener.
# Created: 2026-10-03

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class RequestStateMessage(BaseModel):
    """Popup → opener: send me the state you issued."""

    type: Literal["oauth_request_state"] = "oauth_request_state"


class StateResponseMessage(BaseModel):
    """Opener → popup: the state it issued (``None`` if it has none)."""

    type: Literal["oauth_state_response"] = "oauth_state_response"
    state: str | None = None


class SuccessMessage(BaseModel):
    """Popup → opener: the connection was stored."""

    type: Literal["oauth_success"] = "oauth_success"


CrossWindowMessage = Annotated[
    RequestStateMessage | StateResponseMessage | SuccessMessage,
    Field(discriminator="type"),
]

_adapter: TypeAdapter[CrossWindowMessage] = TypeAdapter(CrossWindowMessage)


def parse_message(data: Any) -> CrossWindowMessage | None:
    """Validate raw message data. Unknown or malformed messages yield ``None``."""
    try:
        return _adapter.validate_python(data)
    except ValidationError:
        logger.debug("Ignoring unrecognised window message: %r", data)
        return None


def to_wire(message: BaseModel) -> dict[str, Any]:
    return message.model_dump()
