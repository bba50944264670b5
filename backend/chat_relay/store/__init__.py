"""Room history storage.

Provides an ordered, append-only message log per room with a Redis
implementation for deployments and an in-memory one for tests and local
development.
"""
import logging

from ..config import StoreSettings, Secrets
from .base import MessageStore
from .errors import CorruptEntryError, EncodingError, StoreError, StoreUnavailableError
from .memory import InMemoryMessageStore
from .redis_store import RedisMessageStore

logger = logging.getLogger(__name__)


def create_store(settings: StoreSettings, secrets: Secrets) -> MessageStore:
    """Instantiate the store selected by ``store.backend``."""
    if settings.backend == "redis":
        if not secrets.redis.url:
            raise ValueError("store.backend is 'redis' but no Redis URL is configured")
        return RedisMessageStore.from_url(
            secrets.redis.url,
            key_prefix=settings.key_prefix,
            socket_timeout=settings.socket_timeout,
            connect_timeout=settings.connect_timeout,
        )
    logger.info("Using in-memory message store; history is lost on restart")
    return InMemoryMessageStore(key_prefix=settings.key_prefix)


__all__ = [
    "MessageStore",
    "InMemoryMessageStore",
    "RedisMessageStore",
    "StoreError",
    "StoreUnavailableError",
    "EncodingError",
    "CorruptEntryError",
    "create_store",
]
