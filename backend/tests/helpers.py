"""Helpers shared by the relay unit tests."""
from unittest.mock import AsyncMock, MagicMock

from starlette.websockets import WebSocketState

from chat_relay.chat.session import Session


def make_websocket() -> MagicMock:
    """A stand-in for a connected FastAPI WebSocket."""
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.close = AsyncMock()
    websocket.client_state = WebSocketState.CONNECTED
    websocket.application_state = WebSocketState.CONNECTED
    return websocket


def make_session(queue_size: int = 64) -> Session:
    """A Session whose writer is never started, so queued frames can be inspected."""
    return Session(make_websocket(), queue_size=queue_size)


def drain(session: Session) -> list:
    """Pop every queued outbound frame of an unstarted session."""
    frames = []
    while session.pending():
        frames.append(session._queue.get_nowait())
    return frames


def make_message(content: str = "hi", room: str = "lobby", msg_id: str = "1", **extra) -> dict:
    data = {
        "content": content,
        "id": msg_id,
        "room": room,
        "sender": {"dp": "https://example.com/a.png", "name": "Alice", "username": "alice"},
        "time": "t1",
        "status": "sent",
    }
    data.update(extra)
    return data
