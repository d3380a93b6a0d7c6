"""Room-scoped real-time chat relay with persisted history."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from starlette.websockets import WebSocketState

from .database import Database
from .errors import AuthorizationError, ValidationError
from .models import Message, normalize_email
from .security import is_room_member

logger = logging.getLogger("mentorlink.chat")

ROOM_SEPARATOR = "-"
MAX_MESSAGE_LENGTH = 4000


def room_id(first_email: str, second_email: str) -> str:
    """Derive the room key shared by both participants regardless of order."""

    return ROOM_SEPARATOR.join(sorted([normalize_email(first_email), normalize_email(second_email)]))


async def send_json_safely(connection: Any, payload: Dict[str, Any]) -> bool:
    """Send a JSON payload, skipping connections that are already gone."""

    if getattr(connection, "client_state", None) == WebSocketState.DISCONNECTED:
        return False
    try:
        await connection.send_json(payload)
    except Exception as exc:
        logger.debug("Dropping payload for closed connection: %s", exc)
        return False
    return True


class ChatRelay:
    """Broadcast chat messages to every connection subscribed to a room.

    A connection starts unjoined, enters exactly one room through
    :meth:`join_room` and leaves it on :meth:`leave`. Joining another room
    implicitly leaves the previous one. A connection whose pair has since been
    unlinked is removed from its room on the next send.
    """

    def __init__(self, database: Database) -> None:
        self._database = database
        self._rooms: Dict[str, Set[Any]] = {}
        self._memberships: Dict[Any, str] = {}
        self._pairs: Dict[Any, Tuple[str, str]] = {}

    def room_of(self, connection: Any) -> Optional[str]:
        return self._memberships.get(connection)

    def members(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    def history(self, room: str) -> List[Dict[str, object]]:
        return [message.to_dict() for message in self._database.list_messages(room)]

    async def join_room(
        self,
        connection: Any,
        user_email: str,
        junior_email: str,
        senior_email: str,
    ) -> str:
        junior = self._database.get_user(junior_email)
        senior = self._database.get_user(senior_email)
        user = self._database.get_user(user_email)
        if not is_room_member(user, junior, senior):
            raise AuthorizationError("You are not a participant of this mentoring pair")

        room = room_id(junior_email, senior_email)
        self.leave(connection)
        self._rooms.setdefault(room, set()).add(connection)
        self._memberships[connection] = room
        self._pairs[connection] = (junior.email, senior.email)
        logger.info("%s joined room %s", normalize_email(user_email), room)

        await send_json_safely(
            connection,
            {"event": "loadMessages", "room": room, "messages": self.history(room)},
        )
        return room

    async def send_message(self, connection: Any, sender_email: str, text: str) -> Message:
        room = self._memberships.get(connection)
        if room is None:
            raise ValidationError("Join a room before sending messages")

        cleaned = text.strip()
        if not cleaned:
            raise ValidationError("Message must not be empty")
        if len(cleaned) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

        junior_email, senior_email = self._pairs[connection]
        junior = self._database.get_user(junior_email)
        senior = self._database.get_user(senior_email)
        if not is_room_member(self._database.get_user(sender_email), junior, senior):
            self.leave(connection)
            raise AuthorizationError("You are no longer a participant of this mentoring pair")

        message = self._database.append_message(room, sender_email, cleaned)
        payload = {"event": "chatMessage", **message.to_dict()}
        for member in list(self._rooms.get(room, ())):
            await send_json_safely(member, payload)
        return message

    def leave(self, connection: Any) -> None:
        room = self._memberships.pop(connection, None)
        self._pairs.pop(connection, None)
        if room is None:
            return
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection)
            if not members:
                self._rooms.pop(room, None)


__all__ = ["ChatRelay", "ROOM_SEPARATOR", "room_id", "send_json_safely"]
