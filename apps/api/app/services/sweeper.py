"""Background task that retires idle rooms."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import timedelta

from .hms import UpstreamClient
from .room_store import RoomStore

logger = logging.getLogger(__name__)


class RoomSweeper:
    """Drive ``RoomStore.sweep`` on a fixed interval until stopped."""

    def __init__(
        self,
        store: RoomStore,
        upstream: UpstreamClient,
        *,
        interval: float = 60,
        idle_timeout: timedelta = timedelta(minutes=5),
    ) -> None:
        self._store = store
        self._upstream = upstream
        self._interval = interval
        self._idle_timeout = idle_timeout
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Room inactivity checker started (timeout: %.1f minutes)",
            self._idle_timeout.total_seconds() / 60,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def tick(self) -> list[str]:
        return await self._store.sweep(self._upstream, self._idle_timeout)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                logger.exception("Room inactivity sweep failed")
