"""Abstract MessageStore interface.

Every history back-end (Redis, in-memory, ...) implements this interface so
the event router stays storage-agnostic. Both shipped implementations share
the serialization helpers below, so encoding and decoding failures surface
the same way regardless of where the bytes live.
"""
from abc import ABC, abstractmethod
from typing import List

from pydantic import ValidationError

from ..chat.schemas import Message
from .errors import CorruptEntryError, EncodingError

DEFAULT_KEY_PREFIX = "room:"


def encode_message(message: Message) -> str:
    """Serialize *message* to the JSON text stored as a sorted-set member."""
    try:
        return message.model_dump_json()
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"Cannot encode message {message.id!r}: {exc}") from exc


def decode_message(room: str, raw: str | bytes) -> Message:
    """Parse a stored member back into a Message, raising CorruptEntryError.

    *raw* may be bytes straight from the store; invalid UTF-8 is reported by
    pydantic as a JSON validation error.
    """
    try:
        return Message.model_validate_json(raw)
    except ValidationError as exc:
        raise CorruptEntryError(room, str(exc)) from exc


class MessageStore(ABC):
    """Append-only, per-room ordered message log.

    Implementations must be safe under concurrent ``append()`` calls from
    many connection handlers on the same event loop: two appends to the same
    room always receive distinct, increasing ordering keys.
    """

    def __init__(self, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self.key_prefix = key_prefix

    def room_key(self, room: str) -> str:
        """Namespaced partition key for *room*, e.g. ``room:lobby``."""
        return f"{self.key_prefix}{room}"

    @abstractmethod
    async def append(self, room: str, message: Message) -> bool:
        """Store *message* at the end of *room*'s history.

        Returns:
            True if a new entry was written, False if a byte-identical entry
            was already present (the first stored position is kept).

        Raises:
            StoreUnavailableError: The back-end cannot be reached.
            EncodingError: The message cannot be serialized.
        """

    @abstractmethod
    async def list(self, room: str) -> List[Message]:
        """Return every message of *room* in insertion order.

        An unknown room yields an empty list. Any entry that fails to decode
        raises CorruptEntryError for the whole call.
        """

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the back-end is reachable."""

    @abstractmethod
    async def close(self) -> None:
        """Release the back-end connection. Safe to call twice."""
