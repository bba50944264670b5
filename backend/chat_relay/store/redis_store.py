"""Redis-backed message store.

Storage layout:
    room:<roomId>      sorted set, member = message JSON, score = sequence
    seq:room:<roomId>  integer counter, INCR'd once per append

The score comes from a store-side ``INCR`` rather than the wall clock, so two
appends to the same room always get distinct, increasing keys even when they
come from different relay processes or land in the same nanosecond.

Members are read back as raw bytes (``decode_responses=False``) so an entry
that is not valid UTF-8 fails JSON validation and surfaces as
CorruptEntryError like any other undecodable entry.

Timeouts:
    Every command inherits ``socket_timeout`` / ``socket_connect_timeout``
    from the client; a stalled Redis surfaces as StoreUnavailableError
    instead of hanging the connection handler.
"""
import logging
from typing import List, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ..chat.schemas import Message
from .base import DEFAULT_KEY_PREFIX, MessageStore, decode_message, encode_message
from .errors import StoreUnavailableError

logger = logging.getLogger(__name__)

SEQUENCE_KEY_PREFIX = "seq:"


def normalize_redis_url(address: str) -> str:
    """Accept either a bare ``host:port`` address or a full redis:// URL."""
    address = address.strip()
    if "://" in address:
        return address
    return f"redis://{address}"


class RedisMessageStore(MessageStore):
    """MessageStore on a single shared ``redis.asyncio.Redis`` client.

    The client is created once at startup and injected; the store owns it
    and closes it in ``close()``.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        super().__init__(key_prefix)
        self._client = client
        self._closed = False

    @classmethod
    def from_url(
        cls,
        address: str,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        socket_timeout: Optional[float] = 5.0,
        connect_timeout: Optional[float] = 5.0,
    ) -> "RedisMessageStore":
        """Build a store from a ``host:port`` or ``redis://`` address."""
        url = normalize_redis_url(address)
        client = aioredis.Redis.from_url(
            url,
            decode_responses=False,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
        )
        logger.info("Redis message store configured for %s", url.split("@")[-1])
        return cls(client, key_prefix=key_prefix)

    def sequence_key(self, room: str) -> str:
        return f"{SEQUENCE_KEY_PREFIX}{self.room_key(room)}"

    async def append(self, room: str, message: Message) -> bool:
        member = encode_message(message)
        key = self.room_key(room)
        try:
            seq = await self._client.incr(self.sequence_key(room))
            added = await self._client.zadd(key, {member: seq}, nx=True)
        except RedisError as exc:
            raise StoreUnavailableError(f"Cannot append to {key}: {exc}") from exc

        if not added:
            logger.debug("Message %s already stored in %s", message.id, key)
            return False
        return True

    async def list(self, room: str) -> List[Message]:
        key = self.room_key(room)
        try:
            members = await self._client.zrange(key, 0, -1)
        except RedisError as exc:
            raise StoreUnavailableError(f"Cannot read {key}: {exc}") from exc
        return [decode_message(room, member) for member in members]

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()
        logger.info("Redis connection closed")
