from pydantic import BaseModel
from typing import List

from schemas.events import Member


class RoomSummary(BaseModel):
    room: str
    online_users_count: int


class RoomListResponse(BaseModel):
    rooms: List[RoomSummary]


class RoomDetailsResponse(BaseModel):
    room: str
    users: List[Member]
    online_users_count: int


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float
    connections: int
    rooms: int
    environment: str


class StatusResponse(BaseModel):
    server: str
    timestamp: int
    version: str
