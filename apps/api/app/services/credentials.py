"""Management token issuance for the upstream room platform.

Every upstream call carries a short-lived HS256 bearer token. The manager keeps
one token cached for the process, refreshes it well before the upstream-side
expiry, and keeps serving the previous token when a refresh fails so a
misconfigured signer degrades instead of taking every request down with it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import uuid4

import jwt

from ..core.config import Settings
from ..core.errors import CredentialError

logger = logging.getLogger(__name__)

TOKEN_TYPE = "management"
TOKEN_VERSION = 2

Clock = Callable[[], datetime]
Minter = Callable[[datetime], str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sign_management_token(
    access_key: str,
    secret_key: str,
    *,
    now: datetime,
    expires_in: timedelta = timedelta(hours=24),
) -> str:
    """Sign a management claim set with the app secret."""

    if not access_key or not secret_key:
        raise CredentialError("APP_ACCESS_KEY and APP_SECRET_KEY must be configured")

    issued_at = int(now.timestamp())
    payload = {
        "access_key": access_key,
        "type": TOKEN_TYPE,
        "version": TOKEN_VERSION,
        "iat": issued_at,
        "nbf": issued_at,
        "exp": issued_at + int(expires_in.total_seconds()),
        "jti": str(uuid4()),
    }
    try:
        return jwt.encode(payload, secret_key, algorithm="HS256")
    except jwt.PyJWTError as exc:
        raise CredentialError(f"Failed to sign management token: {exc}") from exc


@dataclass(slots=True, frozen=True)
class Credential:
    token: str
    issued_at: datetime


@dataclass(slots=True, frozen=True)
class FreshToken:
    token: str
    issued_at: datetime


@dataclass(slots=True, frozen=True)
class StaleToken:
    """Previous token served because the latest refresh attempt failed."""

    token: str
    issued_at: datetime
    error: CredentialError


TokenResult = FreshToken | StaleToken


class CredentialManager:
    """Cache and refresh the process-wide management token."""

    def __init__(
        self,
        minter: Minter,
        *,
        refresh_after: timedelta = timedelta(hours=12),
        clock: Clock = utcnow,
    ) -> None:
        self._minter = minter
        self._refresh_after = refresh_after
        self._clock = clock
        self._credential: Credential | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, *, clock: Clock = utcnow) -> "CredentialManager":
        expires_in = timedelta(hours=settings.token_expiry_hours)

        def mint(now: datetime) -> str:
            return sign_management_token(
                settings.app_access_key,
                settings.app_secret_key,
                now=now,
                expires_in=expires_in,
            )

        return cls(mint, refresh_after=timedelta(hours=settings.token_refresh_hours), clock=clock)

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def _is_current(self, credential: Credential | None, now: datetime) -> bool:
        return credential is not None and now - credential.issued_at <= self._refresh_after

    async def prime(self) -> str:
        """Mint the initial token; failures propagate so startup can abort."""

        async with self._lock:
            now = self._clock()
            token = self._minter(now)
            self._credential = Credential(token=token, issued_at=now)
            logger.info("Management token generated")
            return token

    async def acquire(self) -> TokenResult:
        """Return the cached token, refreshing it first when it has aged out."""

        credential = self._credential
        if credential is not None and self._is_current(credential, self._clock()):
            return FreshToken(credential.token, credential.issued_at)

        async with self._lock:
            now = self._clock()
            credential = self._credential
            # Another caller may have refreshed while we waited.
            if credential is not None and self._is_current(credential, now):
                return FreshToken(credential.token, credential.issued_at)

            try:
                token = self._minter(now)
            except CredentialError as exc:
                if credential is None:
                    raise
                logger.error("Failed to refresh management token, serving previous token: %s", exc)
                return StaleToken(credential.token, credential.issued_at, exc)

            self._credential = Credential(token=token, issued_at=now)
            logger.info("Management token refreshed")
            return FreshToken(token, now)

    async def current_token(self) -> str:
        result = await self.acquire()
        return result.token
