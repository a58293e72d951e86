"""SQLite-backed telemetry store.

One connection is shared by every caller and all access is serialized by a
lock. Mutations run inside ``with connection:`` so each operation commits
as a unit or rolls back entirely.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from mottuguard.exceptions import MottuStoreError
from mottuguard.ingestion.normalize import from_epoch_seconds, to_epoch_seconds
from mottuguard.models.entities import (
    Anchor,
    Measurement,
    PositionRecord,
    Tag,
    TagStatus,
    Vehicle,
    VehicleModel,
    VehicleStatus,
)
from mottuguard.store.schema import SCHEMA_SQL

_logger = logging.getLogger(__name__)


def get_connection(db_path: str) -> sqlite3.Connection:
    """Open a connection usable from executor threads, WAL mode for file databases."""
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL;")
    return conn


@dataclass(frozen=True)
class MeasurementRow:
    """Input row for :meth:`TelemetryStore.add_measurements`."""

    tag_id: int
    anchor_id: int
    timestamp: datetime
    distance: float
    rssi: float = 0.0


def _optional_dt(value: float | None) -> datetime | None:
    return from_epoch_seconds(value) if value is not None else None


def _vehicle_from_row(row: sqlite3.Row) -> Vehicle:
    return Vehicle(
        id=row["id"],
        chassis=row["chassis"],
        plate=row["plate"],
        model=VehicleModel(row["model"]),
        status=VehicleStatus(row["status"]),
        last_x=row["last_x"],
        last_y=row["last_y"],
        last_seen_at=_optional_dt(row["last_seen_at"]),
        created_at=_optional_dt(row["created_at"]),
        updated_at=_optional_dt(row["updated_at"]),
    )


def _tag_from_row(row: sqlite3.Row) -> Tag:
    return Tag(id=row["id"], address=row["address"], status=TagStatus(row["status"]), vehicle_id=row["vehicle_id"])


def _anchor_from_row(row: sqlite3.Row) -> Anchor:
    return Anchor(id=row["id"], name=row["name"], x=row["x"], y=row["y"], z=row["z"])


def _position_from_row(row: sqlite3.Row) -> PositionRecord:
    return PositionRecord(
        id=row["id"],
        vehicle_id=row["vehicle_id"],
        timestamp=from_epoch_seconds(row["timestamp"]),
        x=row["x"],
        y=row["y"],
    )


class TelemetryStore:
    """Relational store for vehicles, tags, anchors, positions and measurements.

    Methods are blocking; async callers dispatch them through
    ``loop.run_in_executor``.
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn = get_connection(db_path)
        with self._lock, self._conn:
            self._conn.executescript(SCHEMA_SQL)

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_vehicle(
        self,
        chassis: str,
        plate: str,
        *,
        model: VehicleModel = VehicleModel.MOTTU_SPORT,
        status: VehicleStatus = VehicleStatus.AVAILABLE,
    ) -> Vehicle:
        now = to_epoch_seconds(datetime.now(UTC))
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    "INSERT INTO vehicles (chassis, plate, model, status, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (chassis, plate, model.value, status.value, now, now),
                )
                row = self._conn.execute("SELECT * FROM vehicles WHERE id = ?", (cur.lastrowid,)).fetchone()
        except sqlite3.IntegrityError as exc:
            raise MottuStoreError(f"Cannot add vehicle {chassis!r}/{plate!r}: {exc}") from exc
        return _vehicle_from_row(row)

    def add_tag(self, address: str, vehicle_id: int, *, status: TagStatus = TagStatus.INACTIVE) -> Tag:
        # Validate before touching the database.
        tag = Tag(id=0, address=address, status=status, vehicle_id=vehicle_id)
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    "INSERT INTO tags (address, status, vehicle_id) VALUES (?, ?, ?)",
                    (tag.address, tag.status.value, vehicle_id),
                )
        except sqlite3.IntegrityError as exc:
            raise MottuStoreError(f"Cannot add tag {address!r}: {exc}") from exc
        return tag.model_copy(update={"id": cur.lastrowid})

    def add_anchor(self, name: str, x: float, y: float, z: float = 0.0) -> Anchor:
        anchor = Anchor(id=0, name=name, x=x, y=y, z=z)
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    "INSERT INTO anchors (name, x, y, z) VALUES (?, ?, ?, ?)",
                    (anchor.name, anchor.x, anchor.y, anchor.z),
                )
        except sqlite3.IntegrityError as exc:
            raise MottuStoreError(f"Cannot add anchor {name!r}: {exc}") from exc
        return anchor.model_copy(update={"id": cur.lastrowid})

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_vehicle(self, vehicle_id: int) -> Vehicle | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM vehicles WHERE id = ?", (vehicle_id,)).fetchone()
        return _vehicle_from_row(row) if row is not None else None

    def get_tag_by_address(self, address: str) -> Tag | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM tags WHERE address = ?", (address,)).fetchone()
        return _tag_from_row(row) if row is not None else None

    def get_anchor_by_name(self, name: str) -> Anchor | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM anchors WHERE name = ?", (name,)).fetchone()
        return _anchor_from_row(row) if row is not None else None

    def get_anchors_by_names(self, names: Iterable[str]) -> dict[str, Anchor]:
        """Resolve anchor names; unknown names are simply absent from the result."""
        wanted = sorted(set(names))
        if not wanted:
            return {}
        placeholders = ", ".join("?" for _ in wanted)
        with self._lock:
            rows = self._conn.execute(f"SELECT * FROM anchors WHERE name IN ({placeholders})", wanted).fetchall()
        return {row["name"]: _anchor_from_row(row) for row in rows}

    # ------------------------------------------------------------------
    # Telemetry writes
    # ------------------------------------------------------------------

    def record_position(self, vehicle_id: int, x: float, y: float, timestamp: datetime) -> PositionRecord | None:
        """Append a position record and update the vehicle's cached fix.

        Both writes commit together. The cache takes the values of the
        latest *write*, not the latest payload timestamp.

        Returns ``None`` (and writes nothing) when the vehicle is missing.
        """
        ts = to_epoch_seconds(timestamp)
        now = to_epoch_seconds(datetime.now(UTC))
        with self._lock, self._conn:
            exists = self._conn.execute("SELECT 1 FROM vehicles WHERE id = ?", (vehicle_id,)).fetchone()
            if exists is None:
                _logger.debug("Vehicle %s not found; position not recorded", vehicle_id)
                return None
            cur = self._conn.execute(
                "INSERT INTO positions (vehicle_id, timestamp, x, y) VALUES (?, ?, ?, ?)",
                (vehicle_id, ts, x, y),
            )
            self._conn.execute(
                "UPDATE vehicles SET last_x = ?, last_y = ?, last_seen_at = ?, updated_at = ? WHERE id = ?",
                (x, y, ts, now, vehicle_id),
            )
        return PositionRecord(id=cur.lastrowid, vehicle_id=vehicle_id, timestamp=from_epoch_seconds(ts), x=x, y=y)

    def add_measurements(self, rows: Sequence[MeasurementRow]) -> int:
        """Insert measurements in one transaction; returns the number written."""
        if not rows:
            return 0
        params = [(r.tag_id, r.anchor_id, to_epoch_seconds(r.timestamp), r.distance, r.rssi) for r in rows]
        try:
            with self._lock, self._conn:
                self._conn.executemany(
                    "INSERT INTO measurements (tag_id, anchor_id, timestamp, distance, rssi) VALUES (?, ?, ?, ?, ?)",
                    params,
                )
        except sqlite3.IntegrityError as exc:
            raise MottuStoreError(f"Cannot add measurements: {exc}") from exc
        return len(params)

    def set_tag_status(self, tag_id: int, status: TagStatus) -> bool:
        with self._lock, self._conn:
            cur = self._conn.execute("UPDATE tags SET status = ? WHERE id = ?", (status.value, tag_id))
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # History reads
    # ------------------------------------------------------------------

    def recent_positions(self, vehicle_id: int, limit: int) -> list[PositionRecord]:
        """The ``limit`` most recent records of a vehicle, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM positions WHERE vehicle_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
                (vehicle_id, limit),
            ).fetchall()
        return [_position_from_row(row) for row in reversed(rows)]

    def position_histories(self, min_count: int = 1) -> dict[int, list[PositionRecord]]:
        """Full ascending history of every vehicle with at least ``min_count`` records."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM positions WHERE vehicle_id IN ("
                "  SELECT vehicle_id FROM positions GROUP BY vehicle_id HAVING COUNT(*) >= ?"
                ") ORDER BY vehicle_id, timestamp, id",
                (min_count,),
            ).fetchall()
        histories: dict[int, list[PositionRecord]] = {}
        for row in rows:
            histories.setdefault(row["vehicle_id"], []).append(_position_from_row(row))
        return histories

    def count_positions(self, vehicle_id: int | None = None) -> int:
        with self._lock:
            if vehicle_id is None:
                row = self._conn.execute("SELECT COUNT(*) FROM positions").fetchone()
            else:
                row = self._conn.execute("SELECT COUNT(*) FROM positions WHERE vehicle_id = ?", (vehicle_id,)).fetchone()
        return int(row[0])

    def list_measurements(self, tag_id: int | None = None) -> list[Measurement]:
        with self._lock:
            if tag_id is None:
                rows = self._conn.execute("SELECT * FROM measurements ORDER BY timestamp, id").fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM measurements WHERE tag_id = ? ORDER BY timestamp, id", (tag_id,)
                ).fetchall()
        return [
            Measurement(
                id=row["id"],
                tag_id=row["tag_id"],
                anchor_id=row["anchor_id"],
                timestamp=from_epoch_seconds(row["timestamp"]),
                distance=row["distance"],
                rssi=row["rssi"],
            )
            for row in rows
        ]
