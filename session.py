import enum
from collections.abc import Mapping
from typing import Any, List, Optional

from broadcaster import Broadcaster
from constants import ADMIN_USER, MAX_MESSAGE_LENGTH, ROSTER_REFRESH_ON_MESSAGE
from errors import ChatError, InternalError, MessageTooLongError, UserNotFoundError, ValidationError
from logging_config import get_logger
from registry import Binding, Registry
from schemas import events
from schemas.events import ChatMessage, Member, RoomData, UserTyping, utc_timestamp

logger = get_logger(__name__)

# Acknowledged when a handler fails for a reason outside the error taxonomy
GENERIC_FAILURES = {
    events.JOIN: "An error occurred while joining the room",
    events.SEND_MESSAGE: "Failed to send message",
}


class SessionState(enum.Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


class SessionLifecycle:
    """State machine of one connection: UNJOINED -> JOINED -> CLOSED.

    Every registry mutation and the room snapshot announced with it happen inside
    one ``Registry.transaction()``, and the broadcaster only enqueues, so all
    members of a room observe join/leave/message events in the same order.
    """

    def __init__(self, connection_id: str, registry: Registry, broadcaster: Broadcaster,
                 max_message_length: int = MAX_MESSAGE_LENGTH,
                 roster_refresh_on_message: bool = ROSTER_REFRESH_ON_MESSAGE):
        self.connection_id = connection_id
        self.registry = registry
        self.broadcaster = broadcaster
        self.max_message_length = max_message_length
        self.roster_refresh_on_message = roster_refresh_on_message
        self.state = SessionState.UNJOINED
        self.binding: Optional[Binding] = None

    @property
    def room(self) -> Optional[str]:
        return self.binding.room if self.binding else None

    def handle(self, event: str, data: Any = None) -> Optional[str]:
        """Dispatch one client event; returns the acknowledgement error text, or None."""
        try:
            if event == events.JOIN:
                self.join(data)
            elif event == events.SEND_MESSAGE:
                self.send_message(data)
            elif event == events.TYPING:
                self.typing(data)
            else:
                logger.info(f"Unknown event '{event}' from connection {self.connection_id}")
                return "Unknown event"
        except ChatError as e:
            logger.info(f"'{event}' rejected for connection {self.connection_id}: {e.message}")
            return e.message
        except Exception as e:
            logger.error(f"'{event}' handler error for connection {self.connection_id}: {e}", exc_info=True)
            return InternalError(GENERIC_FAILURES.get(event)).message
        return None

    def join(self, payload) -> Binding:
        if self.state is SessionState.CLOSED:
            raise UserNotFoundError("User not found")
        if self.state is SessionState.JOINED:
            raise ValidationError("Already joined a room")

        name = payload.get("name") if isinstance(payload, Mapping) else None
        room = payload.get("room") if isinstance(payload, Mapping) else None
        if not name or not room:
            raise ValidationError("Name and room are required")
        if not isinstance(name, str) or not isinstance(room, str):
            raise ValidationError("Name and room must be strings")

        with self.registry.transaction():
            binding = self.registry.add_binding(self.connection_id, name, room)
            self.binding = binding
            self.state = SessionState.JOINED
            members = self.registry.list_room(binding.room)

            self.broadcaster.send(self.connection_id, events.MESSAGE, self._admin_message(
                f"{binding.name}, welcome to the room {binding.room}"))
            self.broadcaster.broadcast(members, events.MESSAGE, self._admin_message(
                f"{binding.name} has joined"), exclude=self.connection_id)
            self._announce_roster(binding.room, members)

        logger.info(f"{binding.name} joined room {binding.room} ({len(members)} member(s))")
        return binding

    def send_message(self, text) -> ChatMessage:
        if not text or not isinstance(text, str) or not text.strip():
            raise ValidationError("Invalid message format")
        if len(text) > self.max_message_length:
            raise MessageTooLongError(f"Message is too long (max {self.max_message_length} characters)")

        with self.registry.transaction():
            binding = self.registry.get_binding(self.connection_id)
            if binding is None or self.state is not SessionState.JOINED:
                raise UserNotFoundError("User not found")
            members = self.registry.list_room(binding.room)

            message = ChatMessage(user=binding.name, text=text.strip(), timestamp=utc_timestamp())
            self.broadcaster.broadcast(members, events.MESSAGE, message.model_dump())
            if self.roster_refresh_on_message:
                self._announce_roster(binding.room, members)

        logger.debug(f"{binding.name} sent a message to room {binding.room}")
        return message

    def typing(self, payload):
        """Relay a typing indicator to the rest of the room; malformed input is ignored."""
        if not isinstance(payload, Mapping):
            return
        with self.registry.transaction():
            binding = self.registry.get_binding(self.connection_id)
            if binding is None or self.state is not SessionState.JOINED:
                return
            members = self.registry.list_room(binding.room)
            indicator = UserTyping(user=binding.name, isTyping=bool(payload.get("isTyping")))
            self.broadcaster.broadcast(members, events.USER_TYPING, indicator.model_dump(), exclude=self.connection_id)

    def close(self, reason: str = None) -> Optional[Binding]:
        """Release the binding and announce the departure. Runs at most once."""
        with self.registry.transaction():
            if self.state is SessionState.CLOSED:
                return None
            self.state = SessionState.CLOSED
            binding = self.registry.remove_binding(self.connection_id)
            if binding is not None:
                members = self.registry.list_room(binding.room)
                self.broadcaster.broadcast(members, events.MESSAGE, self._admin_message(f"{binding.name} has left."))
                self._announce_roster(binding.room, members)

        if binding is not None:
            logger.info(f"{binding.name} disconnected from room {binding.room}, reason: {reason}")
        else:
            logger.debug(f"Connection {self.connection_id} closed without joining, reason: {reason}")
        return binding

    def _announce_roster(self, room: str, members: List[Binding]):
        try:
            room_data = RoomData(room=room, users=[Member(**member.to_dict()) for member in members])
            self.broadcaster.broadcast(members, events.ROOM_DATA, room_data.model_dump())
        except Exception as e:
            logger.error(f"Error sending room data for room {room}: {e}", exc_info=True)

    @staticmethod
    def _admin_message(text: str) -> dict:
        return ChatMessage(user=ADMIN_USER, text=text, timestamp=utc_timestamp()).model_dump()
