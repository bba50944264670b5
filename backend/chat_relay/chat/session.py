"""Per-connection sessions and their lifecycle.

A Session wraps one WebSocket. Outbound events are never written to the
socket by the code that produced them: they are put on a bounded queue and a
dedicated writer task drains it. A slow or dead client therefore only fills
its own queue; when the queue overflows the session is closed instead of
stalling the broadcaster.

Lifecycle:
    connect()    -> accept socket, allocate Session, start writer task
    disconnect() -> exactly once: mark closed, leave all rooms, stop writer
    overflow     -> same as disconnect(), triggered from Session.send()
"""
import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from .registry import RoomRegistry
from .schemas import outbound

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256
DEFAULT_SEND_TIMEOUT = 10.0

# WebSocket close code used when a client cannot keep up (1008 = Policy Violation)
SLOW_CONSUMER_CLOSE_CODE = 1008


class Session:
    """Server-side state of one live connection.

    Attributes:
        id: Server-assigned session identifier.
        websocket: The underlying connection.
        rooms: Room keys this session is subscribed to. Owned by RoomRegistry.
    """

    def __init__(
        self,
        websocket: WebSocket,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        on_overflow: Optional[Callable[["Session"], Awaitable[Any]]] = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.websocket = websocket
        self.rooms: Set[str] = set()
        self.send_timeout = send_timeout
        self._on_overflow = on_overflow
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None
        self._closer: Optional[asyncio.Task] = None
        self.closed = False
        self.overflowed = False

    def __repr__(self) -> str:
        return f"<Session {self.id} rooms={sorted(self.rooms)}>"

    def send(self, event: str, payload: Any) -> bool:
        """Queue an outbound event without blocking.

        Returns:
            True if the event was queued, False if the session is closed or
            its queue is full. A full queue marks the session as overflowed
            and closes it.
        """
        if self.closed:
            return False
        try:
            self._queue.put_nowait(outbound(event, payload))
        except asyncio.QueueFull:
            logger.warning(
                "[Session] Outbound queue full for %s, dropping slow consumer", self.id
            )
            self.overflowed = True
            self.closed = True
            self._closer = asyncio.create_task(self._drop())
            return False
        return True

    async def _drop(self) -> None:
        # Reclaim rooms and socket without waiting for the client to notice.
        if self._on_overflow is not None:
            await self._on_overflow(self)
        else:
            await self.close()

    def pending(self) -> int:
        """Number of events waiting to be written."""
        return self._queue.qsize()

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(
                self._write_loop(), name=f"session-writer-{self.id}"
            )

    async def _write_loop(self) -> None:
        try:
            while True:
                frame = await self._queue.get()
                await asyncio.wait_for(
                    self.websocket.send_json(frame), timeout=self.send_timeout
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[Session] Write to {self.id} failed: {e}")
            self.closed = True

    def _stop_writer(self) -> None:
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()

    async def close(self) -> None:
        """Stop the writer and close the socket if it is still open."""
        self.closed = True
        writer = self._writer
        self._stop_writer()
        if writer is not None:
            try:
                await writer
            except asyncio.CancelledError:
                pass
        if (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        ):
            code = SLOW_CONSUMER_CLOSE_CODE if self.overflowed else 1000
            try:
                await self.websocket.close(code=code)
            except Exception as e:
                logger.debug(f"[Session] Close of {self.id} failed: {e}")


class SessionManager:
    """Creates sessions on connect and reclaims them on disconnect.

    Note:
        Designed for a single event loop; not thread-safe.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self.registry = registry
        self.queue_size = queue_size
        self.send_timeout = send_timeout
        # session id -> Session, only live sessions
        self.sessions: Dict[str, Session] = {}

    async def connect(self, websocket: WebSocket) -> Session:
        """Accept *websocket* and allocate a Session with no subscriptions."""
        await websocket.accept()
        session = Session(
            websocket,
            queue_size=self.queue_size,
            send_timeout=self.send_timeout,
            on_overflow=self._drop_slow_consumer,
        )
        self.sessions[session.id] = session
        session.start()
        logger.info(
            f"[Sessions] Connected: {session.id} ({len(self.sessions)} active)"
        )
        return session

    async def disconnect(self, session: Session, reason: str = "") -> bool:
        """Tear *session* down. Returns False if it was already disconnected."""
        if self.sessions.pop(session.id, None) is None:
            return False
        session.closed = True
        await self.registry.leave_all(session)
        await session.close()
        logger.info(
            f"[Sessions] Disconnected: {session.id} reason={reason or 'unknown'} "
            f"({len(self.sessions)} active)"
        )
        return True

    async def _drop_slow_consumer(self, session: Session) -> None:
        await self.disconnect(session, reason="slow consumer")

    def active_count(self) -> int:
        return len(self.sessions)

    def get(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    async def shutdown(self) -> None:
        """Disconnect every live session (server shutdown)."""
        for session in list(self.sessions.values()):
            await self.disconnect(session, reason="server shutdown")
