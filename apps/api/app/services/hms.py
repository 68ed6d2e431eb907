"""Authenticated helper for the upstream room platform's management API."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..core.errors import UpstreamError
from .credentials import CredentialManager

logger = logging.getLogger(__name__)

Room = dict[str, Any]


@dataclass(slots=True)
class RoomPage:
    limit: int = 10
    data: list[Room] = field(default_factory=list)


class UpstreamClient:
    """Issue management calls; callers decide whether and when to retry."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialManager,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._timeout = timeout

    @property
    def credentials(self) -> CredentialManager:
        return self._credentials

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        token = await self._credentials.current_token()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            response = await self._client.request(
                method,
                f"{self._base_url}{path}",
                params=params,
                json=json,
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Upstream API error: {exc!r}") from exc

        if not response.is_success:
            raise UpstreamError(
                f"Upstream API error: {_error_message(response)}",
                upstream_status=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("Upstream API error: invalid JSON body", upstream_status=response.status_code) from exc

    async def list_rooms(self, template_id: str, *, enabled: bool = True) -> RoomPage:
        params = {"template_id": template_id, "enabled": "true" if enabled else "false"}
        payload = await self._request("GET", "/rooms", params=params)
        if not payload or not payload.get("data"):
            return RoomPage(limit=(payload or {}).get("limit") or 10)
        return RoomPage(limit=payload.get("limit") or 10, data=list(payload["data"]))

    async def find_room_by_name(self, name: str) -> Room | None:
        payload = await self._request("GET", "/rooms", params={"name": name})
        if not payload or not payload.get("data"):
            logger.debug("No upstream rooms found with name %s", name)
            return None
        return next((room for room in payload["data"] if room.get("name") == name), None)

    async def create_room(self, name: str, description: str, template_id: str) -> Room:
        body = {"name": name, "description": description, "template_id": template_id}
        return await self._request("POST", "/rooms", json=body)

    async def set_room_enabled(self, room_id: str, enabled: bool) -> Room:
        return await self._request("POST", f"/rooms/{room_id}", json={"enabled": enabled})

    async def enable_room(self, room_id: str) -> Room:
        return await self.set_room_enabled(room_id, True)

    async def disable_room(self, room_id: str) -> Room:
        return await self.set_room_enabled(room_id, False)

    async def create_room_code(self, room_id: str, role: str) -> dict[str, Any]:
        return await self._request("POST", f"/room-codes/room/{room_id}/role/{role}")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"
