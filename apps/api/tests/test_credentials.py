"""Tests for management token minting and refresh."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.core.config import Settings
from app.core.errors import CredentialError
from app.services import credentials
from app.services.credentials import CredentialManager, FreshToken, StaleToken


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class CountingMinter:
    def __init__(self) -> None:
        self.calls = 0
        self.fail = False

    def __call__(self, now: datetime) -> str:
        if self.fail:
            raise CredentialError("signing key unavailable")
        self.calls += 1
        return f"token-{self.calls}"


START = datetime(2025, 10, 10, 12, 0, tzinfo=timezone.utc)


def test_sign_management_token_claims():
    now = datetime.now(timezone.utc)
    token = credentials.sign_management_token("access", "secret", now=now, expires_in=timedelta(hours=24))

    claims = jwt.decode(token, "secret", algorithms=["HS256"])

    assert claims["access_key"] == "access"
    assert claims["type"] == "management"
    assert claims["version"] == 2
    assert claims["iat"] == claims["nbf"] == int(now.timestamp())
    assert claims["exp"] - claims["iat"] == 24 * 3600
    assert claims["jti"]


def test_sign_management_token_uses_unique_ids():
    now = datetime.now(timezone.utc)
    first = jwt.decode(credentials.sign_management_token("a", "s", now=now), "s", algorithms=["HS256"])
    second = jwt.decode(credentials.sign_management_token("a", "s", now=now), "s", algorithms=["HS256"])

    assert first["jti"] != second["jti"]


def test_sign_management_token_requires_keys():
    with pytest.raises(CredentialError):
        credentials.sign_management_token("", "secret", now=START)
    with pytest.raises(CredentialError):
        credentials.sign_management_token("access", "", now=START)


@pytest.mark.asyncio
async def test_cached_token_is_reused_until_refresh_window():
    clock = FakeClock(START)
    minter = CountingMinter()
    manager = CredentialManager(minter, refresh_after=timedelta(hours=12), clock=clock)

    assert await manager.current_token() == "token-1"
    clock.advance(hours=12)
    assert await manager.current_token() == "token-1"
    assert minter.calls == 1

    clock.advance(seconds=1)
    result = await manager.acquire()

    assert result == FreshToken("token-2", clock.now)
    assert minter.calls == 2


@pytest.mark.asyncio
async def test_failed_refresh_serves_previous_token():
    clock = FakeClock(START)
    minter = CountingMinter()
    manager = CredentialManager(minter, refresh_after=timedelta(hours=12), clock=clock)
    await manager.prime()

    clock.advance(hours=13)
    minter.fail = True
    result = await manager.acquire()

    assert isinstance(result, StaleToken)
    assert result.token == "token-1"
    assert result.issued_at == START
    assert isinstance(result.error, CredentialError)
    assert await manager.current_token() == "token-1"

    minter.fail = False
    assert await manager.current_token() == "token-2"


@pytest.mark.asyncio
async def test_failure_without_any_token_propagates():
    minter = CountingMinter()
    minter.fail = True
    manager = CredentialManager(minter, clock=FakeClock(START))

    with pytest.raises(CredentialError):
        await manager.current_token()
    with pytest.raises(CredentialError):
        await manager.prime()
    assert manager.credential is None


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh():
    clock = FakeClock(START)
    minter = CountingMinter()
    manager = CredentialManager(minter, clock=clock)

    tokens = await asyncio.gather(*(manager.current_token() for _ in range(10)))

    assert set(tokens) == {"token-1"}
    assert minter.calls == 1


@pytest.mark.asyncio
async def test_from_settings_signs_with_configured_keys():
    settings = Settings(app_access_key="ak", app_secret_key="sk", token_expiry_hours=24)
    manager = CredentialManager.from_settings(settings)

    token = await manager.prime()
    claims = jwt.decode(token, "sk", algorithms=["HS256"])

    assert claims["access_key"] == "ak"
    assert await manager.current_token() == token


@pytest.mark.asyncio
async def test_from_settings_without_keys_fails_at_startup():
    manager = CredentialManager.from_settings(Settings(app_access_key="", app_secret_key=""))

    with pytest.raises(CredentialError):
        await manager.prime()
