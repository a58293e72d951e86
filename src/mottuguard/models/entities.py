"""Persistent entities.

Entities reference each other only through integer foreign keys
(``vehicle_id``, ``tag_id``, ``anchor_id``); relationships are resolved
by store lookups.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import Field, field_validator

from mottuguard.models._base import MottuBaseModel

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


class TagStatus(StrEnum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    MAINTENANCE = "Maintenance"


class VehicleStatus(StrEnum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    IN_MAINTENANCE = "InMaintenance"


class VehicleModel(StrEnum):
    MOTTU_SPORT_ESD = "MottuSportESD"
    MOTTU_SPORT = "MottuSport"
    MOTTU_E = "MottuE"
    MOTTU_POP = "MottuPop"


def is_tag_address(value: str) -> bool:
    """Whether *value* looks like a 64-bit hardware address (16 hex chars)."""
    return len(value) == 16 and all(ch in _HEX_DIGITS for ch in value)


class Vehicle(MottuBaseModel):
    """A motorcycle and its cached last-known position."""

    id: int
    chassis: str
    plate: str
    model: VehicleModel = VehicleModel.MOTTU_SPORT
    status: VehicleStatus = VehicleStatus.AVAILABLE
    last_x: float | None = None
    last_y: float | None = None
    last_seen_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Tag(MottuBaseModel):
    """UWB tag attached to exactly one vehicle."""

    id: int
    address: str
    status: TagStatus = TagStatus.INACTIVE
    vehicle_id: int

    @field_validator("address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        address = value.strip()
        if not is_tag_address(address):
            raise ValueError("tag address must be 16 hexadecimal characters")
        return address


class Anchor(MottuBaseModel):
    """Fixed receiver; ``name`` is the key used inside ranging payloads."""

    id: int
    name: str = Field(..., min_length=1, max_length=50)
    x: float
    y: float
    z: float


class PositionRecord(MottuBaseModel):
    """One timestamped fix of a vehicle. Immutable once written."""

    id: int | None = None
    vehicle_id: int
    timestamp: datetime
    x: float
    y: float


class Measurement(MottuBaseModel):
    """Distance between one tag and one anchor. Immutable once written."""

    id: int | None = None
    tag_id: int
    anchor_id: int
    timestamp: datetime
    distance: float
    rssi: float = 0.0
