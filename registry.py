import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from errors import DuplicateNameError, ValidationError
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Binding:
    connection_id: str
    name: str
    room: str

    def to_dict(self) -> dict:
        return {"id": self.connection_id, "name": self.name, "room": self.room}


def normalize(value) -> str:
    """Trim and lowercase a name or room; names and rooms are case-insensitive."""
    return value.strip().lower()


class Registry:
    """Authoritative table of active (connection, name, room) bindings.

    Bindings are kept twice: by connection id, and per room in join order. Both
    views are only touched while holding ``self._lock``, so a caller that needs a
    mutation and the room snapshot it announces to be one step wraps both in
    ``transaction()``.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._bindings: Dict[str, Binding] = {}
        # room -> {connection_id: Binding}, dicts keep insertion (join) order
        self._rooms: Dict[str, Dict[str, Binding]] = {}

    @contextmanager
    def transaction(self) -> Iterator["Registry"]:
        with self._lock:
            yield self

    def add_binding(self, connection_id: str, name: str, room: str) -> Binding:
        if not isinstance(name, str) or not isinstance(room, str):
            raise ValidationError("Name and room must be strings")
        name = normalize(name)
        room = normalize(room)
        if not name or not room:
            raise ValidationError("Name and room are required")

        with self._lock:
            if connection_id in self._bindings:
                raise ValidationError("Already joined a room")
            members = self._rooms.get(room, {})
            if any(member.name == name for member in members.values()):
                logger.info(f"Name '{name}' already taken in room {room}")
                raise DuplicateNameError("Username is already taken")

            binding = Binding(connection_id=connection_id, name=name, room=room)
            self._bindings[connection_id] = binding
            self._rooms.setdefault(room, {})[connection_id] = binding

        logger.debug(f"Bound connection {connection_id} as '{name}' in room {room}")
        return binding

    def remove_binding(self, connection_id: str) -> Optional[Binding]:
        with self._lock:
            binding = self._bindings.pop(connection_id, None)
            if binding is None:
                return None
            members = self._rooms.get(binding.room)
            if members is not None:
                members.pop(connection_id, None)
                if not members:
                    del self._rooms[binding.room]
                    logger.debug(f"Room {binding.room} is now empty")

        logger.debug(f"Unbound connection {connection_id} ('{binding.name}') from room {binding.room}")
        return binding

    def get_binding(self, connection_id: str) -> Optional[Binding]:
        with self._lock:
            return self._bindings.get(connection_id)

    def list_room(self, room: str) -> List[Binding]:
        """Bindings of a room in join order; empty when the room has no members."""
        if not isinstance(room, str):
            return []
        with self._lock:
            return list(self._rooms.get(normalize(room), {}).values())

    def rooms(self) -> Dict[str, int]:
        """Active rooms mapped to their member counts."""
        with self._lock:
            return {room: len(members) for room, members in self._rooms.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)

    def __contains__(self, connection_id) -> bool:
        with self._lock:
            return connection_id in self._bindings
