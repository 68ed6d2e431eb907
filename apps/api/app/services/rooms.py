"""Room lifecycle operations behind the HTTP endpoints."""
from __future__ import annotations

import logging

from ..core.config import Settings
from ..core.errors import AuthorizationError, NotFoundError, UpstreamError
from ..schemas import rooms as schemas
from .hms import UpstreamClient
from .identity import IdentityDirectory, room_description
from .room_store import RoomSession, RoomStore, parse_timestamp

logger = logging.getLogger(__name__)


class RoomService:
    """Coordinate the upstream platform and the local room registry."""

    def __init__(
        self,
        settings: Settings,
        upstream: UpstreamClient,
        store: RoomStore,
        identity: IdentityDirectory,
    ) -> None:
        self._settings = settings
        self.upstream = upstream
        self.store = store
        self.identity = identity

    async def list_rooms(self) -> schemas.RoomListResponse:
        """Return enabled rooms owned by this service, decorated with local metadata."""

        page = await self.upstream.list_rooms(self._settings.template_id, enabled=True)
        data = []
        for room in page.data:
            if not self.store.owns_name(room.get("name") or ""):
                continue
            session = self.store.get(room.get("id", ""))
            data.append({**room, "metadata": _metadata(session)})
        return schemas.RoomListResponse(limit=page.limit, data=data)

    async def create_room(self, payload: schemas.CreateRoomRequest) -> schemas.CreateRoomResponse:
        """Create, reuse, or re-enable the owner's room and mint a creator code."""

        username = await self.identity.fetch_username(payload.fid)
        description = room_description(payload.fid, username)
        room_name = self.store.room_name_for(payload.fid)

        # Concurrent creates for one owner must see each other's room.
        async with self.store.name_lock(room_name):
            existing = await self.upstream.find_room_by_name(room_name)
            if existing is None:
                room = await self.upstream.create_room(room_name, description, self._settings.template_id)
                status = schemas.CreateRoomStatus.CREATED
                logger.info("Created new room %s with display name %s", room_name, description)
            elif not existing.get("enabled"):
                room = await self.upstream.enable_room(existing["id"]) or existing
                status = schemas.CreateRoomStatus.REENABLED
                logger.info("Re-enabled existing room %s", room_name)
            else:
                room = existing
                status = schemas.CreateRoomStatus.EXISTING
                logger.info("Using existing enabled room %s", room_name)

            room_id = room.get("id") or (existing or {}).get("id")
            if not room_id:
                raise UpstreamError("Upstream API error: room response carried no id")
            code = _room_code(await self.upstream.create_room_code(room_id, self._settings.creator_role))

            # Record the room only once both the room and its code exist.
            await self.store.upsert(
                owner_id=payload.fid,
                owner_address=payload.address,
                room_id=room_id,
                room_name=room_name,
                created_at=parse_timestamp(room.get("created_at")),
                disabled=False,
            )
        return schemas.CreateRoomResponse(room_id=room_id, code=code, status=status)

    async def join_room(self, payload: schemas.JoinRoomRequest) -> schemas.JoinRoomResponse:
        async def mint(session: RoomSession) -> schemas.JoinRoomResponse:
            is_creator = is_owner(session, payload.fid, payload.address, require_address=False)
            role = self._settings.creator_role if is_creator else self._settings.viewer_role
            code = _room_code(await self.upstream.create_room_code(payload.room_id, role))
            return schemas.JoinRoomResponse(code=code, role=role, server_is_creator=is_creator)

        return await self.store.with_active_room(payload.room_id, mint)

    async def disable_room(self, payload: schemas.DisableRoomRequest) -> schemas.DisableRoomResponse:
        session = self._require(payload.room_id)
        if not is_owner(session, payload.fid, payload.address, require_address=True):
            raise AuthorizationError("Only the room creator can disable this room")

        await self.store.disable(payload.room_id, self.upstream)
        logger.info("Room %s disabled by owner %s", payload.room_id, payload.fid)
        return schemas.DisableRoomResponse()

    def _require(self, room_id: str) -> RoomSession:
        session = self.store.get(room_id)
        if session is None:
            raise NotFoundError("Room not found")
        return session


def is_owner(session: RoomSession, fid: int, address: str | None, *, require_address: bool) -> bool:
    """Match a caller against the room's recorded owner.

    Addresses compare case-insensitively; when ``require_address`` is false an
    omitted address matches on identity alone.
    """

    if session.owner_id != fid:
        return False
    if address is None:
        return not require_address
    return session.owner_address is not None and session.owner_address.lower() == address.lower()


def _metadata(session: RoomSession | None) -> dict | None:
    if session is None:
        return None
    return schemas.RoomMetadata(
        fid=session.owner_id,
        address=session.owner_address,
        room_name=session.room_name,
        created_at=session.created_at,
        last_activity=session.last_activity,
        disabled=session.disabled,
    ).model_dump(mode="json", by_alias=True)


def _room_code(response: object) -> str:
    if not isinstance(response, dict) or not response.get("code"):
        raise UpstreamError("Upstream API error: room code response carried no code")
    return str(response["code"])
