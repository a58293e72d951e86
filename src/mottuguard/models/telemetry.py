"""Inbound telemetry payload models."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator, model_validator

from mottuguard.ingestion.normalize import safe_float
from mottuguard.models._base import MottuBaseModel


class PositionPayload(MottuBaseModel):
    """``.../uwb/{tag}/position``: ``{"x": n, "y": n, "ts"?: unix-seconds}``."""

    x: float
    y: float
    ts: Any = None

    @field_validator("x", "y", mode="before")
    @classmethod
    def _require_number(cls, value: Any) -> float:
        parsed = safe_float(value)
        if parsed is None:
            raise ValueError("must be a finite number")
        return parsed


class RangeEntry(MottuBaseModel):
    """One anchor reading: a bare distance or ``{"distance", "rssi"?}``."""

    distance: float
    rssi: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_number(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return value
        return {"distance": value}

    @field_validator("distance", mode="before")
    @classmethod
    def _require_distance(cls, value: Any) -> float:
        parsed = safe_float(value)
        if parsed is None:
            raise ValueError("distance must be a finite number")
        return parsed

    @field_validator("rssi", mode="before")
    @classmethod
    def _default_rssi(cls, value: Any) -> float:
        parsed = safe_float(value)
        return 0.0 if parsed is None else parsed


class RangingPayload(MottuBaseModel):
    """``.../uwb/{tag}/ranging``: ``{"ranges": {anchor: entry}, "ts"?: unix-seconds}``.

    ``ranges`` is kept as received; entries are validated one by one so a
    single bad entry never rejects the whole report.
    """

    ranges: dict[str, Any] = Field(...)
    ts: Any = None


class EventPayload(MottuBaseModel):
    """``.../event/{tag}``: ``{"reason": str, ...}``."""

    reason: str = "unknown"

    @field_validator("reason", mode="before")
    @classmethod
    def _coerce_reason(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return "unknown"
