"""Room registry: which live sessions are subscribed to which rooms.

A room has no record of its own here; it exists while at least one session
is subscribed to it and disappears when the last one leaves.

Broadcast semantics:
    - The subscriber set is snapshotted under the lock, then each session is
      handed the event independently.
    - Delivery only enqueues (Session.send never awaits the socket), so one
      slow recipient cannot hold up the rest of the room.
    - A session that refuses the event (closed, or its queue overflowed) is
      dropped from the room; the failure never reaches the caller.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Set

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Tracks room subscriptions for every live session.

    All mutations and snapshots go through one asyncio.Lock so join, leave
    and broadcast never observe a half-updated subscriber set.
    """

    def __init__(self) -> None:
        # room key -> subscribed sessions
        self._rooms: Dict[str, Set[Session]] = {}
        self._lock = asyncio.Lock()

    async def join(self, session: Session, room: str) -> bool:
        """Subscribe *session* to *room*.

        Returns:
            True if the subscription is new, False if it already existed or
            the session is closed.
        """
        async with self._lock:
            if session.closed:
                return False
            members = self._rooms.setdefault(room, set())
            if session in members:
                return False
            members.add(session)
            session.rooms.add(room)
        logger.info(
            "Session %s joined room %s (members: %d)", session.id, room, len(members)
        )
        return True

    async def leave(self, session: Session, room: str) -> None:
        async with self._lock:
            self._discard(session, room)

    async def leave_all(self, session: Session) -> None:
        """Remove every subscription of *session*. Safe if it never joined."""
        async with self._lock:
            for room in list(session.rooms):
                self._discard(session, room)

    def _discard(self, session: Session, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(session)
            if not members:
                del self._rooms[room]
        session.rooms.discard(room)

    async def broadcast(self, room: str, event: str, payload: Any) -> int:
        """Deliver *event* to every session subscribed to *room*, sender included.

        Returns:
            Number of sessions that accepted the event.
        """
        async with self._lock:
            targets = list(self._rooms.get(room, ()))
        if not targets:
            return 0

        delivered = 0
        failed: List[Session] = []
        for session in targets:
            try:
                accepted = session.send(event, payload)
            except Exception as e:
                logger.debug(f"Delivery of {event} to {session.id} failed: {e}")
                accepted = False
            if accepted:
                delivered += 1
            else:
                failed.append(session)

        if failed:
            async with self._lock:
                for session in failed:
                    if session.closed:
                        self._discard(session, room)
                        logger.debug(f"Removed dead session {session.id} from room {room}")
        return delivered

    # Replies into a user's private room use exactly the same fan-out.
    emit_to = broadcast

    def members(self, room: str) -> Set[Session]:
        return set(self._rooms.get(room, ()))

    def has_members(self, room: str) -> bool:
        return bool(self._rooms.get(room))

    def room_count(self) -> int:
        return len(self._rooms)
