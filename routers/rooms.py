from fastapi import APIRouter, Depends, HTTPException
from schemas.rooms import CreateRoomRequest, CreateRoomResponse
from typing import List
from backend import RoomRegistry
from dependencies import get_room_registry, require_username
from errors import ChatError
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api", tags=["rooms"])


@rooms_router.post("/create-room", response_model=CreateRoomResponse)
async def create_room(
    room: CreateRoomRequest,
    username: str = Depends(require_username),
    registry: RoomRegistry = Depends(get_room_registry),
):
    # Throttled per authenticated user, so reconnecting does not reset the window
    logger.info(f"Room creation request from {username}, name: {room.room_name!r}")
    try:
        name = registry.create_room(username, room.room_name)
    except ChatError as e:
        logger.warning(f"Room creation by {username} failed: {type(e).__name__}")
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return CreateRoomResponse(message="Room created successfully", room_name=name)


@rooms_router.get("/rooms", response_model=List[str])
async def list_rooms(
    username: str = Depends(require_username),
    registry: RoomRegistry = Depends(get_room_registry),
):
    rooms = registry.list_rooms()
    logger.debug(f"Listing {len(rooms)} rooms for {username}")
    return rooms
