"""In-memory registry of upstream rooms and their owners."""
from __future__ import annotations

import asyncio
import enum
import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Optional, TypeVar

from ..core.errors import CredentialError, NotFoundError, RoomDisabledError, UpstreamError
from .credentials import Clock, utcnow

if TYPE_CHECKING:
    from .hms import UpstreamClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RoomState(str, enum.Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


@dataclass(slots=True)
class RoomSession:
    room_id: str
    owner_id: int
    room_name: str
    created_at: datetime
    last_activity: datetime
    owner_address: str | None = None
    disabled: bool = False

    @property
    def state(self) -> RoomState:
        return RoomState.DISABLED if self.disabled else RoomState.ACTIVE

    def is_idle(self, cutoff: datetime) -> bool:
        return not self.disabled and self.last_activity < cutoff


class RoomStore:
    """Track known rooms; records are retired via ``disabled``, never deleted.

    Each room has its own lock so the idle sweep and owner requests on the same
    room serialise while unrelated rooms proceed independently.
    """

    def __init__(self, prefix: str, *, clock: Clock = utcnow) -> None:
        self._prefix = prefix
        self._clock = clock
        self._sessions: Dict[str, RoomSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._name_locks: Dict[str, asyncio.Lock] = {}
        self._name_pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._sessions

    def room_name_for(self, owner_id: int) -> str:
        return f"{self._prefix}-{owner_id}"

    def owns_name(self, name: str) -> bool:
        return name.startswith(self._prefix)

    def owner_id_from_name(self, name: str) -> Optional[int]:
        match = self._name_pattern.match(name)
        return int(match.group(1)) if match else None

    def _lock_for(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    def name_lock(self, room_name: str) -> asyncio.Lock:
        """Lock serialising create-or-reuse of the room with this name."""

        lock = self._name_locks.get(room_name)
        if lock is None:
            lock = self._name_locks[room_name] = asyncio.Lock()
        return lock

    def get(self, room_id: str) -> Optional[RoomSession]:
        """Return a copy of the session so callers cannot mutate the registry."""

        session = self._sessions.get(room_id)
        return replace(session) if session else None

    def sessions(self) -> list[RoomSession]:
        return [replace(session) for session in self._sessions.values()]

    async def reconcile(self, upstream: "UpstreamClient", template_id: str) -> int:
        """Rebuild the registry from the upstream listing of enabled rooms."""

        logger.info("Syncing rooms with upstream platform")
        try:
            page = await upstream.list_rooms(template_id, enabled=True)
        except (UpstreamError, CredentialError) as exc:
            logger.error("Failed to sync rooms: %s", exc)
            return 0

        now = self._clock()
        synced = 0
        for room in page.data:
            if not isinstance(room, dict):
                logger.warning("Skipping malformed upstream room entry: %r", room)
                continue
            name = room.get("name") or ""
            owner_id = self.owner_id_from_name(name)
            room_id = room.get("id")
            if owner_id is None or not room_id:
                continue
            async with self._lock_for(room_id):
                self._sessions[room_id] = RoomSession(
                    room_id=room_id,
                    owner_id=owner_id,
                    room_name=name,
                    created_at=parse_timestamp(room.get("created_at")) or now,
                    # The true last activity is unknown upstream; restart the idle clock.
                    last_activity=now,
                )
            synced += 1

        logger.info("Synced %d active rooms", synced)
        return synced

    async def upsert(
        self,
        *,
        owner_id: int,
        room_id: str,
        room_name: str,
        created_at: datetime | None = None,
        owner_address: str | None = None,
        disabled: bool | None = None,
    ) -> RoomSession:
        """Insert a session or refresh an existing one after a create or join."""

        async with self._lock_for(room_id):
            now = self._clock()
            session = self._sessions.get(room_id)
            if session is None:
                session = RoomSession(
                    room_id=room_id,
                    owner_id=owner_id,
                    room_name=room_name,
                    created_at=created_at or now,
                    last_activity=now,
                    owner_address=owner_address,
                    disabled=bool(disabled),
                )
                self._sessions[room_id] = session
                return replace(session)

            session.owner_id = owner_id
            session.room_name = room_name
            if owner_address is not None:
                session.owner_address = owner_address
            if created_at is not None:
                session.created_at = created_at
            if disabled is not None:
                session.disabled = disabled
            if not session.disabled:
                session.last_activity = max(session.last_activity, now)
            return replace(session)

    async def touch(self, room_id: str) -> bool:
        """Refresh activity on an active room; disabled or unknown rooms are left alone."""

        async with self._lock_for(room_id):
            session = self._sessions.get(room_id)
            if session is None or session.disabled:
                return False
            session.last_activity = max(session.last_activity, self._clock())
            return True

    async def with_active_room(self, room_id: str, action: Callable[[RoomSession], Awaitable[T]]) -> T:
        """Run ``action`` on an active room under its lock, then refresh its activity.

        The sweep takes the same lock, so a room cannot be disabled between the
        active check and the activity refresh.
        """

        async with self._lock_for(room_id):
            session = self._sessions.get(room_id)
            if session is None:
                raise NotFoundError("Room not found")
            if session.disabled:
                raise RoomDisabledError("Room is no longer active")
            result = await action(replace(session))
            session.last_activity = max(session.last_activity, self._clock())
            return result

    async def mark_disabled(self, room_id: str) -> RoomSession:
        async with self._lock_for(room_id):
            return self._mark_disabled_locked(room_id)

    def _mark_disabled_locked(self, room_id: str) -> RoomSession:
        session = self._sessions.get(room_id)
        if session is None:
            raise NotFoundError("Room not found")
        session.disabled = True
        session.last_activity = self._clock()
        return replace(session)

    async def disable(self, room_id: str, upstream: "UpstreamClient") -> RoomSession:
        """Disable a room upstream, then locally; upstream failures propagate."""

        async with self._lock_for(room_id):
            if room_id not in self._sessions:
                raise NotFoundError("Room not found")
            await upstream.disable_room(room_id)
            return self._mark_disabled_locked(room_id)

    async def sweep(
        self,
        upstream: "UpstreamClient",
        idle_timeout: timedelta,
        now: datetime | None = None,
    ) -> list[str]:
        """Disable every active room idle for longer than ``idle_timeout``.

        A room stays active when its upstream disable fails so the next sweep
        retries it.
        """

        cutoff = (now or self._clock()) - idle_timeout
        candidates = [room_id for room_id, session in self._sessions.items() if session.is_idle(cutoff)]
        disabled: list[str] = []

        for room_id in candidates:
            async with self._lock_for(room_id):
                session = self._sessions.get(room_id)
                # A join may have refreshed the room while we waited for the lock.
                if session is None or not session.is_idle(cutoff):
                    continue
                logger.info(
                    "Room %s inactive for more than %.1f minutes, disabling",
                    room_id,
                    idle_timeout.total_seconds() / 60,
                )
                try:
                    await upstream.disable_room(room_id)
                except (UpstreamError, CredentialError) as exc:
                    logger.error("Failed to disable inactive room %s: %s", room_id, exc)
                    continue
                self._mark_disabled_locked(room_id)
                disabled.append(room_id)

        return disabled


def parse_timestamp(value: object) -> datetime | None:
    """Parse an upstream ISO-8601 timestamp, tolerating a trailing ``Z``."""

    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None
