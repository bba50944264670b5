"""Errors raised by message store implementations."""


class StoreError(Exception):
    """Base class for message store failures."""


class StoreUnavailableError(StoreError):
    """The backing store could not be reached or timed out."""


class EncodingError(StoreError):
    """A message could not be serialized for storage."""


class CorruptEntryError(StoreError):
    """A stored entry could not be decoded back into a message."""

    def __init__(self, room: str, detail: str) -> None:
        super().__init__(f"Corrupt entry in room {room!r}: {detail}")
        self.room = room
