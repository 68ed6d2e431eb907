"""Room lifecycle endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..schemas import rooms as rooms_schema
from ..services.rate_limit import enforce_rate_limit
from ..services.rooms import RoomService

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])


def get_room_service(request: Request) -> RoomService:
    return request.app.state.room_service


@router.get("/rooms", response_model=rooms_schema.RoomListResponse)
async def list_rooms(service: RoomService = Depends(get_room_service)) -> rooms_schema.RoomListResponse:
    """Return active rooms decorated with local ownership metadata."""

    return await service.list_rooms()


@router.post("/create-room", response_model=rooms_schema.CreateRoomResponse)
async def create_room(
    payload: rooms_schema.CreateRoomRequest,
    service: RoomService = Depends(get_room_service),
) -> rooms_schema.CreateRoomResponse:
    """Create or reuse the caller's room and return a creator access code."""

    return await service.create_room(payload)


@router.post("/join-room", response_model=rooms_schema.JoinRoomResponse)
async def join_room(
    payload: rooms_schema.JoinRoomRequest,
    service: RoomService = Depends(get_room_service),
) -> rooms_schema.JoinRoomResponse:
    """Return a creator or viewer access code for a known room."""

    return await service.join_room(payload)


@router.post("/disable-room", response_model=rooms_schema.DisableRoomResponse)
async def disable_room(
    payload: rooms_schema.DisableRoomRequest,
    service: RoomService = Depends(get_room_service),
) -> rooms_schema.DisableRoomResponse:
    """Disable a room on behalf of its owner."""

    return await service.disable_room(payload)
