"""Normalization helpers.

Centralizes defensive parsing of broker payloads so handlers never see
raw bytes or loosely-typed JSON numbers.
"""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime
from typing import Any

from mottuguard.exceptions import MottuPayloadError


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize payload timestamps to epoch seconds.

    - Empty/missing/unparseable -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    """

    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts > 1e11:
        ts /= 1000.0
    return ts


def timestamp_or_now(value: Any, now: datetime | None = None) -> datetime:
    """Resolve a payload ``ts`` into a UTC datetime, defaulting to ingestion time."""
    ts = normalize_timestamp_seconds(value)
    if ts is None:
        return now if now is not None else datetime.now(UTC)
    try:
        return datetime.fromtimestamp(ts, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return now if now is not None else datetime.now(UTC)


def to_epoch_seconds(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp()


def from_epoch_seconds(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=UTC)


def decode_json_payload(payload: bytes | str, *, topic: str = "") -> Any:
    """Decode a UTF-8 JSON payload, raising :class:`MottuPayloadError` on failure."""
    try:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        return json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MottuPayloadError(f"Payload is not valid JSON: {exc}", topic=topic) from exc


def decode_json_object(payload: bytes | str, *, topic: str = "") -> dict[str, Any]:
    decoded = decode_json_payload(payload, topic=topic)
    if not isinstance(decoded, dict):
        raise MottuPayloadError("Payload is not a JSON object", topic=topic)
    return decoded
