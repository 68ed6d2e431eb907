"""FastAPI application brokering upstream audio rooms."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .core.config import Settings, settings
from .core.errors import RoomServiceError
from .routers import rooms as rooms_router
from .services.credentials import CredentialManager
from .services.hms import UpstreamClient
from .services.identity import IdentityDirectory
from .services.rate_limit import RateLimiter
from .services.room_store import RoomStore
from .services.rooms import RoomService
from .services.sweeper import RoomSweeper

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


def build_room_service(config: Settings, http_client: httpx.AsyncClient) -> RoomService:
    """Wire the credential manager, upstream client, store, and identity lookup."""

    credentials = CredentialManager.from_settings(config)
    upstream = UpstreamClient(
        config.hms_api_base,
        credentials,
        http_client=http_client,
        timeout=config.upstream_timeout_seconds,
    )
    identity = IdentityDirectory(
        config.neynar_api_key,
        base_url=config.neynar_api_base,
        http_client=http_client,
        timeout=config.upstream_timeout_seconds,
    )
    store = RoomStore(config.room_name_prefix)
    return RoomService(config, upstream, store, identity)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    async with httpx.AsyncClient(timeout=settings.upstream_timeout_seconds) as http_client:
        service = build_room_service(settings, http_client)
        # A signer that cannot mint at startup is fatal.
        await service.upstream.credentials.prime()
        await service.store.reconcile(service.upstream, settings.template_id)

        sweeper = RoomSweeper(
            service.store,
            service.upstream,
            interval=settings.inactive_check_interval_seconds,
            idle_timeout=timedelta(seconds=settings.room_timeout_seconds),
        )
        app.state.room_service = service
        app.state.rate_limiter = RateLimiter(
            window_seconds=settings.rate_limit_window_seconds,
            max_requests=settings.max_requests_per_window,
        )
        app.state.sweeper = sweeper
        sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()


app = FastAPI(title="Room Broker API", version="0.1.0", lifespan=lifespan)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(rooms_router.router, tags=["rooms"])


@app.exception_handler(RoomServiceError)
async def room_service_error_handler(request: Request, exc: RoomServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request to %s failed: %s", request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": describe_validation_errors(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def describe_validation_errors(errors: list[dict]) -> str:
    """Collapse pydantic errors into the single message callers receive."""

    missing = [str(err["loc"][-1]) for err in errors if err.get("type") == "missing" and err.get("loc")]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"

    for err in errors:
        cause = (err.get("ctx") or {}).get("error")
        if isinstance(cause, RoomServiceError):
            return cause.message
    if errors:
        return str(errors[0].get("msg", "Invalid request"))
    return "Invalid request"


@app.get("/api/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Simple liveness probe."""

    return {"status": "ok"}


@app.head("/api/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)
