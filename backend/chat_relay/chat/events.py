"""Inbound event dispatch.

Protocol (JSON frames, ``{"type": <event>, "data": <payload>}``):
    - register:     data = "<key>"
                    -> session joins room <key>
                    -> the registering session alone receives:
                       {type: "notice", data: "You successfully registered."}
    - getMessages:  data = {userId, id}
                    -> room <userId> receives: {type: "prevMessages", data: [Message, ...]}
    - message:      data = Message
                    -> stored in room <room>, then room <room> receives:
                       {type: "reply", data: Message}

Anything the router cannot handle is answered with
``{type: "error", data: {event, error}}`` to the originating session only;
the connection stays open and other sessions are unaffected.
"""
import json
import logging
from typing import Any, Optional

from pydantic import ValidationError

from ..store import MessageStore
from ..store.errors import CorruptEntryError, StoreError, StoreUnavailableError
from .registry import RoomRegistry
from .schemas import (
    EVENT_ERROR,
    EVENT_GET_MESSAGES,
    EVENT_GET_MESSAGES_LEGACY,
    EVENT_MESSAGE,
    EVENT_MESSAGE_RECEIVED,
    EVENT_NOTICE,
    EVENT_PREV_MESSAGES,
    EVENT_REGISTER,
    REGISTERED_NOTICE,
    GetMessagesRequest,
    InboundEvent,
    Message,
    RegisterPayload,
    error_payload,
)
from .session import Session

logger = logging.getLogger(__name__)


class EventRouter:
    """Routes parsed client events to the room registry and message store.

    Holds no per-connection state: everything lives in the Session, the
    RoomRegistry or the MessageStore, all of which are injected.
    """

    def __init__(self, store: MessageStore, registry: RoomRegistry) -> None:
        self.store = store
        self.registry = registry

    async def dispatch_text(self, session: Session, text: str) -> None:
        """Parse a raw text frame and dispatch it."""
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"[Router] Invalid JSON from {session.id}: {e}")
            self._reply_error(session, None, "Invalid message format: not JSON")
            return
        await self.dispatch(session, raw)

    async def dispatch(self, session: Session, raw: Any) -> None:
        """Validate an already-decoded frame and run the matching handler."""
        try:
            envelope = InboundEvent.model_validate(raw)
        except ValidationError:
            self._reply_error(session, None, "Invalid message format: type is required")
            return

        event = envelope.type
        logger.debug("[Router] %s received: type=%s", session.id, event)
        try:
            if event == EVENT_REGISTER:
                payload = RegisterPayload(key=envelope.data)
                await self.register(session, payload.key)
            elif event in (EVENT_GET_MESSAGES, EVENT_GET_MESSAGES_LEGACY):
                request = GetMessagesRequest.model_validate(envelope.data)
                await self.fetch_history(session, request)
            elif event == EVENT_MESSAGE:
                message = Message.model_validate(envelope.data)
                await self.send_message(session, message)
            else:
                logger.warning(f"[Router] Unknown event type from {session.id}: {event}")
                self._reply_error(session, event, f"Unknown event type: {event}")
        except ValidationError as e:
            logger.warning(f"[Router] Invalid {event} payload from {session.id}: {e}")
            self._reply_error(session, event, f"Invalid {event} payload")

    # =========================================================================
    # Handlers
    # =========================================================================

    async def register(self, session: Session, key: str) -> None:
        """Join *session* to room *key* and acknowledge to that session only."""
        await self.registry.join(session, key)
        logger.info(f"[Router] Registered: {key} (session {session.id})")
        session.send(EVENT_NOTICE, REGISTERED_NOTICE)

    async def fetch_history(self, session: Session, request: GetMessagesRequest) -> None:
        """Read room ``request.id`` and deliver it into room ``request.userId``.

        History is read straight from the store, whether or not the
        requester joined the queried room. If nobody is registered under
        ``userId`` the reply goes to the requesting session directly.
        """
        try:
            messages = await self.store.list(request.id)
        except CorruptEntryError as e:
            logger.error(f"[Router] Corrupt history for room {request.id}: {e}")
            self._reply_error(session, EVENT_GET_MESSAGES, "History is unreadable")
            return
        except StoreError as e:
            logger.error(f"[Router] History read failed for room {request.id}: {e}")
            self._reply_error(session, EVENT_GET_MESSAGES, "History is unavailable")
            return

        data = [msg.model_dump() for msg in messages]
        if self.registry.has_members(request.userId):
            await self.registry.emit_to(request.userId, EVENT_PREV_MESSAGES, data)
        else:
            session.send(EVENT_PREV_MESSAGES, data)
        logger.info(
            f"[Router] Sent {len(data)} messages of room {request.id} to {request.userId}"
        )

    async def send_message(self, session: Session, message: Message) -> None:
        """Persist *message*, then broadcast it to ``message.room``.

        Nothing is broadcast unless the append succeeded. A failed append is
        reported to the sender only. A message that is already stored (a
        retry after a lost reply) is broadcast again, so delivery is
        at-least-once.
        """
        logger.info(
            f"[Router] Message {message.id!r} for room {message.room} "
            f"from {message.sender.username or session.id}: {message.content[:50]}"
        )
        try:
            added = await self.store.append(message.room, message)
        except StoreUnavailableError as e:
            logger.error(f"[Router] Store unavailable, message {message.id!r} not saved: {e}")
            self._reply_error(session, EVENT_MESSAGE, "Message could not be saved, try again")
            return
        except StoreError as e:
            logger.error(f"[Router] Message {message.id!r} rejected by store: {e}")
            self._reply_error(session, EVENT_MESSAGE, "Message could not be saved")
            return

        if not added:
            logger.debug(f"[Router] Message {message.id!r} was already stored, relaying again")

        delivered = await self.registry.broadcast(
            message.room, EVENT_MESSAGE_RECEIVED, message.model_dump()
        )
        logger.info(f"[Router] Broadcast {message.id!r} to {delivered} sessions in {message.room}")

    def _reply_error(self, session: Session, event: Optional[str], error: str) -> None:
        session.send(EVENT_ERROR, error_payload(event, error))
