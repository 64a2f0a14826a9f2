from fastapi import APIRouter, HTTPException, Request

from logging_config import get_logger
from schemas.events import Member
from schemas.rooms import RoomDetailsResponse, RoomListResponse, RoomSummary

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/", response_model=RoomListResponse)
async def list_rooms(request: Request):
    registry = request.app.state.registry
    rooms = [RoomSummary(room=room, online_users_count=count) for room, count in registry.rooms().items()]
    logger.debug(f"Listing {len(rooms)} active rooms")
    return RoomListResponse(rooms=rooms)


@rooms_router.get("/{room}", response_model=RoomDetailsResponse)
async def get_room_details(room: str, request: Request):
    """
    Current roster of a room, in join order.

    Room names are case-insensitive. Rooms only exist while they have members,
    so an empty room is reported as not found.
    """
    registry = request.app.state.registry
    members = registry.list_room(room)
    if not members:
        logger.info(f"Room details failed: Room {room} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    return RoomDetailsResponse(
        room=members[0].room,
        users=[Member(**member.to_dict()) for member in members],
        online_users_count=len(members),
    )
