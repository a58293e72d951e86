from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from mottuguard.models.entities import Anchor, Tag, Vehicle
from mottuguard.store.sqlite import TelemetryStore

TAG_ADDRESS = "00AABBCCDDEEFF01"


def dt(seconds: float = 0.0) -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC) + timedelta(seconds=seconds)


def seed_track(
    store: TelemetryStore,
    vehicle_id: int,
    count: int,
    *,
    start: float = 0.0,
    step: float = 1.0,
    vx: float = 0.5,
    vy: float = 0.25,
) -> None:
    """Record *count* fixes of a vehicle moving in a straight line."""
    for i in range(count):
        store.record_position(vehicle_id, vx * i, vy * i, dt(start + step * i))


@dataclass
class Fleet:
    vehicle: Vehicle
    tag: Tag
    anchors: dict[str, Anchor]


@pytest.fixture
def store() -> Iterator[TelemetryStore]:
    telemetry_store = TelemetryStore(":memory:")
    yield telemetry_store
    telemetry_store.close()


@pytest.fixture
def fleet(store: TelemetryStore) -> Fleet:
    vehicle = store.add_vehicle("9BWZZZ377VT004251", "ABC1D23")
    tag = store.add_tag(TAG_ADDRESS, vehicle.id)
    anchors = {
        name: store.add_anchor(name, x, y, 2.5)
        for name, x, y in (("A1", 0.0, 0.0), ("A2", 10.0, 0.0), ("A3", 0.0, 10.0))
    }
    return Fleet(vehicle=vehicle, tag=tag, anchors=anchors)
