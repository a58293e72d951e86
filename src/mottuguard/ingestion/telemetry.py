"""Telemetry message builders.

Each builder decides *what happened* for one inbound message and returns a
small frozen value. Who gets told (store, live channel) is decided by the
consumer, so these functions stay pure and easy to test.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from mottuguard._constants import (
    ALERT_REASONS,
    EVENT_MOTION,
    EVENT_POSITION_UPDATE,
    EVENT_RANGING_UPDATE,
    EVENT_STATUS_UPDATE,
)
from mottuguard.exceptions import MottuPayloadError
from mottuguard.ingestion.normalize import decode_json_object, decode_json_payload, timestamp_or_now
from mottuguard.ingestion.topics import MessageKind
from mottuguard.models.telemetry import EventPayload, PositionPayload, RangeEntry, RangingPayload

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionFix:
    """A validated position report for one tag."""

    tag_address: str
    x: float
    y: float
    timestamp: datetime

    def live_update(self) -> tuple[str, tuple[Any, ...]]:
        return EVENT_POSITION_UPDATE, (self.tag_address, self.x, self.y, self.timestamp)


@dataclass(frozen=True)
class RangingReport:
    """A ranging report: usable readings plus the ranges exactly as received."""

    tag_address: str
    timestamp: datetime
    readings: dict[str, RangeEntry]
    raw_ranges: dict[str, Any]
    rejected: tuple[str, ...] = ()

    def live_update(self) -> tuple[str, tuple[Any, ...]]:
        return EVENT_RANGING_UPDATE, (self.tag_address, self.raw_ranges, self.timestamp)


@dataclass(frozen=True)
class TagNotice:
    """Motion or status report, forwarded as-is."""

    kind: MessageKind
    tag_address: str
    data: Any

    def live_update(self) -> tuple[str, tuple[Any, ...]]:
        name = EVENT_MOTION if self.kind == MessageKind.MOTION else EVENT_STATUS_UPDATE
        return name, (self.tag_address, self.data)


@dataclass(frozen=True)
class TagAlert:
    """Event report. ``live_event`` is ``None`` for reasons that are not forwarded."""

    tag_address: str
    reason: str
    data: dict[str, Any] = field(default_factory=dict)
    live_event: str | None = None

    @property
    def forwarded(self) -> bool:
        return self.live_event is not None

    def live_update(self) -> tuple[str, tuple[Any, ...]] | None:
        if self.live_event is None:
            return None
        return self.live_event, (self.tag_address, self.data)


def build_position_fix(
    tag_address: str,
    payload: bytes | str,
    *,
    topic: str = "",
    now: datetime | None = None,
) -> PositionFix:
    """Parse a position payload; a missing or bad ``ts`` falls back to *now*."""
    data = decode_json_object(payload, topic=topic)
    try:
        parsed = PositionPayload.model_validate(data)
    except ValidationError as exc:
        raise MottuPayloadError(f"Invalid position payload: {exc.errors()[0]['msg']}", topic=topic) from exc
    return PositionFix(
        tag_address=tag_address,
        x=parsed.x,
        y=parsed.y,
        timestamp=timestamp_or_now(parsed.ts, now),
    )


def build_ranging_report(
    tag_address: str,
    payload: bytes | str,
    *,
    topic: str = "",
    now: datetime | None = None,
) -> RangingReport:
    """Parse a ranging payload.

    Entries that are neither a number nor an object with a numeric
    ``distance`` are skipped individually and listed in ``rejected``.
    """
    data = decode_json_object(payload, topic=topic)
    try:
        parsed = RangingPayload.model_validate(data)
    except ValidationError as exc:
        raise MottuPayloadError(f"Invalid ranging payload: {exc.errors()[0]['msg']}", topic=topic) from exc

    readings: dict[str, RangeEntry] = {}
    rejected: list[str] = []
    for anchor_name, raw_entry in parsed.ranges.items():
        try:
            readings[anchor_name] = RangeEntry.model_validate(raw_entry)
        except ValidationError:
            _logger.debug("Skipping malformed range entry tag=%s anchor=%s", tag_address, anchor_name)
            rejected.append(anchor_name)

    return RangingReport(
        tag_address=tag_address,
        timestamp=timestamp_or_now(parsed.ts, now),
        readings=readings,
        raw_ranges=parsed.ranges,
        rejected=tuple(rejected),
    )


def build_tag_notice(kind: MessageKind, tag_address: str, payload: bytes | str, *, topic: str = "") -> TagNotice:
    if kind not in (MessageKind.MOTION, MessageKind.STATUS):
        raise ValueError(f"{kind} is not a notice kind")
    return TagNotice(kind=kind, tag_address=tag_address, data=decode_json_payload(payload, topic=topic))


def build_tag_alert(tag_address: str, payload: bytes | str, *, topic: str = "") -> TagAlert:
    data = decode_json_object(payload, topic=topic)
    reason = EventPayload.model_validate(data).reason
    return TagAlert(
        tag_address=tag_address,
        reason=reason,
        data=data,
        live_event=ALERT_REASONS.get(reason),
    )
