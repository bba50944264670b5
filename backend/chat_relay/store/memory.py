"""In-process message store.

Keeps each room's history as an append-only list of ``(seq, member)`` pairs,
mirroring the Redis sorted-set layout so tests exercise the same ordering
and serialization rules. Nothing survives a restart.
"""
import asyncio
import logging
from typing import Dict, List, Set, Tuple

from ..chat.schemas import Message
from .base import DEFAULT_KEY_PREFIX, MessageStore, decode_message, encode_message
from .errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class InMemoryMessageStore(MessageStore):
    """MessageStore backed by plain dicts guarded by an asyncio.Lock."""

    def __init__(self, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        super().__init__(key_prefix)
        # room_key -> [(seq, serialized message)] in ascending seq order
        self._entries: Dict[str, List[Tuple[int, str]]] = {}
        # room_key -> members already stored (sorted-set uniqueness)
        self._members: Dict[str, Set[str]] = {}
        self._seq = 0
        self._lock = asyncio.Lock()
        self._closed = False

    async def append(self, room: str, message: Message) -> bool:
        member = encode_message(message)
        key = self.room_key(room)
        async with self._lock:
            self._check_open(key)
            members = self._members.setdefault(key, set())
            if member in members:
                logger.debug("Message %s already stored in %s", message.id, key)
                return False
            self._seq += 1
            self._entries.setdefault(key, []).append((self._seq, member))
            members.add(member)
        return True

    async def list(self, room: str) -> List[Message]:
        key = self.room_key(room)
        async with self._lock:
            self._check_open(key)
            snapshot = [member for _, member in self._entries.get(key, [])]
        return [decode_message(room, member) for member in snapshot]

    def _check_open(self, key: str) -> None:
        if self._closed:
            raise StoreUnavailableError(f"Store is closed, cannot access {key}")

    async def ping(self) -> bool:
        return not self._closed

    async def close(self) -> None:
        self._closed = True

    def message_count(self, room: str) -> int:
        """Number of stored messages in *room*."""
        return len(self._entries.get(self.room_key(room), []))
