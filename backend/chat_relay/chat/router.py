"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /ws: Real-time relay (register, getMessages, message)
    - GET /rooms/{room_id}/messages: Full message history of a room

The store, registry, session manager and event router are created in the
application lifespan and read from ``app.state``; nothing here is a
module-level singleton.
"""
import logging

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect

from ..store.errors import CorruptEntryError, StoreError
from .events import EventRouter
from .session import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_relay_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for one relay client.

    Protocol Flow:
        1. Client connects -> a Session with no subscriptions is created
        2. Client sends {type: "register", data: "<key>"}
           -> that session receives {type: "notice", data: "..."}
        3. Client sends {type: "message", data: Message}
           -> room <Message.room> receives {type: "reply", data: Message}
        4. Client sends {type: "getMessages", data: {userId, id}}
           -> room <userId> receives {type: "prevMessages", data: [...]}
        5. On disconnect -> all subscriptions are dropped

    Args:
        websocket: The WebSocket connection.
    """
    sessions: SessionManager = websocket.app.state.sessions
    events: EventRouter = websocket.app.state.events

    session = await sessions.connect(websocket)
    reason = "client closed"
    try:
        while True:
            text = await websocket.receive_text()
            await events.dispatch_text(session, text)
    except WebSocketDisconnect as e:
        reason = f"client closed (code {e.code})"
    except Exception as e:
        reason = f"error: {e}"
        logger.exception(f"[WS] Connection {session.id} failed")
    finally:
        await sessions.disconnect(session, reason=reason)


@router.get("/rooms/{room_id}/messages")
async def get_room_messages(room_id: str, request: Request) -> dict:
    """Return the stored history of a room, oldest first.

    Args:
        room_id: Room to read.

    Returns:
        dict: ``{"room": room_id, "messages": [...]}``.

    Raises:
        HTTPException: 500 if an entry is corrupt, 503 if the store is down.
    """
    store = request.app.state.store
    try:
        messages = await store.list(room_id)
    except CorruptEntryError as e:
        logger.error(f"Corrupt history for room {room_id}: {e}")
        raise HTTPException(status_code=500, detail="Room history is unreadable")
    except StoreError as e:
        logger.error(f"History read failed for room {room_id}: {e}")
        raise HTTPException(status_code=503, detail="Message store unavailable")

    return {"room": room_id, "messages": [msg.model_dump() for msg in messages]}
