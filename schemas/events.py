from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from pydantic import BaseModel

# client -> server
JOIN = "join"
SEND_MESSAGE = "sendMessage"
TYPING = "typing"

# server -> client
MESSAGE = "message"
ROOM_DATA = "roomData"
USER_TYPING = "userTyping"
ACK = "ack"


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T10:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ClientFrame(BaseModel):
    event: str
    data: Any = None
    ack: Optional[Union[int, str]] = None


class ChatMessage(BaseModel):
    user: str
    text: str
    timestamp: str


class Member(BaseModel):
    id: str
    name: str
    room: str


class RoomData(BaseModel):
    room: str
    users: List[Member]


class UserTyping(BaseModel):
    user: str
    isTyping: bool
