"""Wire schemas for the chat relay.

Field names match what existing clients send and expect byte-for-byte:
``content, id, room, sender{dp, name, username}, time, status``.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# =============================================================================
# Event names
# =============================================================================

# Inbound
EVENT_REGISTER = "register"
EVENT_GET_MESSAGES = "getMessages"
EVENT_GET_MESSAGES_LEGACY = "getMesages"  # misspelling used by older clients
EVENT_MESSAGE = "message"

# Outbound
EVENT_NOTICE = "notice"
EVENT_PREV_MESSAGES = "prevMessages"
EVENT_MESSAGE_RECEIVED = "reply"
EVENT_ERROR = "error"

REGISTERED_NOTICE = "You successfully registered."


# =============================================================================
# Data Models
# =============================================================================


class Sender(BaseModel):
    """Identity snapshot attached to a message.

    Attributes:
        dp: Avatar / display picture reference.
        name: Human-readable display name.
        username: Account handle.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    dp: str = Field(default="", description="Avatar reference")
    name: str = Field(default="", description="Display name")
    username: str = Field(default="", description="Username")


class Message(BaseModel):
    """A chat message as sent by a client and stored in room history.

    Messages are immutable once created. ``time`` and ``status`` are
    client-supplied strings and are passed through untouched.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    content: str = Field(default="", description="Message text")
    id: str = Field(default="", description="Client-supplied message ID")
    room: str = Field(..., min_length=1, description="Target room")
    sender: Sender = Field(default_factory=Sender)
    time: str = Field(default="", description="Client-supplied timestamp")
    status: str = Field(default="", description="Delivery/read marker")


class GetMessagesRequest(BaseModel):
    """Payload of a history request.

    Attributes:
        userId: Room the history is delivered into (the requester's inbox).
        id: Room whose history is read.
    """
    model_config = ConfigDict(extra="ignore")

    userId: str = Field(..., min_length=1)
    id: str = Field(..., min_length=1)


class InboundEvent(BaseModel):
    """Envelope of every frame a client sends: ``{"type": ..., "data": ...}``."""
    type: str = Field(..., min_length=1)
    data: Any = None


class RegisterPayload(BaseModel):
    """Wrapper used to validate the bare-string payload of ``register``."""
    key: str = Field(..., min_length=1)

    @field_validator("key", mode="before")
    @classmethod
    def _must_be_string(cls, value: Any) -> Any:
        if not isinstance(value, str):
            raise ValueError("register payload must be a string")
        return value


def outbound(event: str, data: Any) -> dict:
    """Build the outbound envelope for *event*."""
    return {"type": event, "data": data}


def error_payload(event: Optional[str], error: str) -> dict:
    return {"event": event, "error": error}
