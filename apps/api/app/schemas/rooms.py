"""Data contracts for the room endpoints."""
from __future__ import annotations

import enum
import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..core.errors import ValidationError

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def validate_address(value: object) -> str:
    if not isinstance(value, str) or not _ADDRESS_PATTERN.match(value):
        raise ValidationError("Invalid ETH address format")
    return value


def parse_fid(value: object) -> int:
    """Accept positive integers, including their string and integral float forms."""

    if isinstance(value, bool):
        raise ValidationError("Invalid FID format")
    if isinstance(value, int):
        fid = value
    elif isinstance(value, float) and value.is_integer():
        fid = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        fid = int(value.strip())
    else:
        raise ValidationError("Invalid FID format")
    if fid <= 0:
        raise ValidationError("Invalid FID format")
    return fid


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _IdentityFields(CamelModel):
    @field_validator("fid", mode="before", check_fields=False)
    @classmethod
    def _check_fid(cls, value: object) -> int:
        return parse_fid(value)

    @field_validator("address", mode="before", check_fields=False)
    @classmethod
    def _check_address(cls, value: object) -> object:
        if value in (None, "") and not cls.model_fields["address"].is_required():
            return None
        return validate_address(value)


class CreateRoomRequest(_IdentityFields):
    address: str
    fid: int


class JoinRoomRequest(_IdentityFields):
    room_id: str = Field(..., min_length=1)
    fid: int
    address: str | None = None


class DisableRoomRequest(_IdentityFields):
    room_id: str = Field(..., min_length=1)
    address: str
    fid: int


class CreateRoomStatus(str, enum.Enum):
    CREATED = "created"
    EXISTING = "existing"
    REENABLED = "reenabled"


class CreateRoomResponse(CamelModel):
    room_id: str
    code: str
    status: CreateRoomStatus


class JoinRoomResponse(CamelModel):
    code: str
    role: str
    server_is_creator: bool


class DisableRoomResponse(CamelModel):
    status: str = "success"
    message: str = "Room disabled successfully"


class RoomMetadata(CamelModel):
    fid: int
    address: str | None = None
    room_name: str
    created_at: datetime
    last_activity: datetime
    disabled: bool = False


class RoomListResponse(BaseModel):
    limit: int = 10
    data: list[dict[str, Any]] = Field(default_factory=list)
