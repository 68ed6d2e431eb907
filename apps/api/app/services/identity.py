"""Best-effort display-name lookup for Farcaster identities."""
from __future__ import annotations

import logging
import re

import httpx

logger = logging.getLogger(__name__)

_DISALLOWED_USERNAME_CHARS = re.compile(r"[^a-zA-Z0-9.\-:]")


class IdentityDirectory:
    """Resolve a numeric identity to a username via the Neynar API.

    Lookups never raise: a missing API key or any failure yields ``None``.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.neynar.com",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._timeout = timeout

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_username(self, fid: int) -> str | None:
        if not self._api_key:
            logger.warning("NEYNAR_API_KEY not set, using fallback room name")
            return None

        try:
            response = await self._client.get(
                f"{self._base_url}/v2/farcaster/user/bulk",
                params={"fids": str(fid)},
                headers={"accept": "application/json", "x-api-key": self._api_key},
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error fetching username for fid %s: %s", fid, exc)
            return None

        users = data.get("users") if isinstance(data, dict) else None
        if users and isinstance(users[0], dict) and users[0].get("username"):
            return str(users[0]["username"])
        return None


def clean_username(username: str | None) -> str | None:
    if not username:
        return None
    return _DISALLOWED_USERNAME_CHARS.sub("", username) or None


def room_description(fid: int, username: str | None) -> str:
    cleaned = clean_username(username)
    return f"Chat with {cleaned}" if cleaned else f"Audio Chat With FID: {fid}"
