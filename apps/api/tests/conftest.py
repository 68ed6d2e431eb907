"""Shared fakes for the room broker tests."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.core.config import Settings
from app.core.errors import UpstreamError
from app.services.hms import RoomPage
from app.services.room_store import RoomStore
from app.services.rooms import RoomService

PREFIX = "test-room"


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakePlatform:
    """In-memory stand-in for the upstream management API."""

    def __init__(self) -> None:
        self.rooms: dict[str, dict] = {}
        self.codes: list[tuple[str, str]] = []
        self.disable_calls: list[str] = []
        self.fail_disable = False
        self.fail_codes = False
        self.fail_list = False

    def add_room(self, room_id: str, name: str, *, enabled: bool = True) -> dict:
        room = {
            "id": room_id,
            "name": name,
            "enabled": enabled,
            "created_at": "2025-10-10T12:00:00Z",
        }
        self.rooms[room_id] = room
        return room

    async def list_rooms(self, template_id: str, *, enabled: bool = True) -> RoomPage:
        if self.fail_list:
            raise UpstreamError("Upstream API error: unavailable", upstream_status=503)
        data = [dict(room) for room in self.rooms.values() if room["enabled"] == enabled]
        return RoomPage(limit=10, data=data)

    async def find_room_by_name(self, name: str) -> dict | None:
        return next((dict(room) for room in self.rooms.values() if room["name"] == name), None)

    async def create_room(self, name: str, description: str, template_id: str) -> dict:
        room = self.add_room(f"room-{len(self.rooms) + 1}", name)
        room["description"] = description
        room["template_id"] = template_id
        return dict(room)

    async def set_room_enabled(self, room_id: str, enabled: bool) -> dict:
        self.rooms[room_id]["enabled"] = enabled
        return dict(self.rooms[room_id])

    async def enable_room(self, room_id: str) -> dict:
        return await self.set_room_enabled(room_id, True)

    async def disable_room(self, room_id: str) -> dict:
        self.disable_calls.append(room_id)
        if self.fail_disable:
            raise UpstreamError("Upstream API error: disable failed", upstream_status=500)
        return await self.set_room_enabled(room_id, False)

    async def create_room_code(self, room_id: str, role: str) -> dict:
        if self.fail_codes:
            raise UpstreamError("Upstream API error: code failed", upstream_status=500)
        self.codes.append((room_id, role))
        return {"code": f"{role}-code-{len(self.codes)}", "room_id": room_id, "role": role}


class FakeIdentity:
    def __init__(self, username: str | None = None) -> None:
        self.username = username
        self.lookups: list[int] = []

    async def fetch_username(self, fid: int) -> str | None:
        self.lookups.append(fid)
        return self.username


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 10, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def store(clock: FakeClock) -> RoomStore:
    return RoomStore(PREFIX, clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        room_name_prefix=PREFIX,
        template_id="template-1",
        creator_role="creator",
        viewer_role="viewer",
    )


@pytest.fixture
def room_service(settings, platform, store, identity) -> RoomService:
    return RoomService(settings, platform, store, identity)  # type: ignore[arg-type]
