"""Error taxonomy shared by the room services and the HTTP layer."""
from __future__ import annotations

from fastapi import status


class RoomServiceError(Exception):
    """Base class for failures that map onto a single caller-visible message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RoomServiceError, ValueError):
    """Malformed or missing request fields."""

    status_code = status.HTTP_400_BAD_REQUEST


class AuthorizationError(RoomServiceError):
    """The caller does not own the room it is acting on."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(RoomServiceError):
    """Referenced room is absent from the local store."""

    status_code = status.HTTP_404_NOT_FOUND


class RoomDisabledError(NotFoundError):
    """Referenced room exists locally but has been retired."""


class RateLimitExceeded(RoomServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.") -> None:
        super().__init__(message)


class CredentialError(RoomServiceError):
    """No usable management token could be produced."""


class UpstreamError(RoomServiceError):
    """The upstream platform answered with a failure or could not be reached."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, *, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
