"""SQL schema of the telemetry store.

Timestamps are UTC epoch seconds stored as REAL.
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS vehicles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chassis TEXT NOT NULL UNIQUE,
    plate TEXT NOT NULL UNIQUE,
    model TEXT NOT NULL,
    status TEXT NOT NULL,
    last_x REAL,
    last_y REAL,
    last_seen_at REAL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    address TEXT NOT NULL UNIQUE,
    status TEXT NOT NULL,
    vehicle_id INTEGER NOT NULL UNIQUE,
    FOREIGN KEY(vehicle_id) REFERENCES vehicles(id)
);

CREATE TABLE IF NOT EXISTS anchors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    x REAL NOT NULL,
    y REAL NOT NULL,
    z REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS positions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    vehicle_id INTEGER NOT NULL,
    timestamp REAL NOT NULL,
    x REAL NOT NULL,
    y REAL NOT NULL,
    FOREIGN KEY(vehicle_id) REFERENCES vehicles(id)
);

CREATE INDEX IF NOT EXISTS idx_positions_vehicle_ts ON positions(vehicle_id, timestamp);

CREATE TABLE IF NOT EXISTS measurements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tag_id INTEGER NOT NULL,
    anchor_id INTEGER NOT NULL,
    timestamp REAL NOT NULL,
    distance REAL NOT NULL,
    rssi REAL NOT NULL DEFAULT 0,
    FOREIGN KEY(tag_id) REFERENCES tags(id),
    FOREIGN KEY(anchor_id) REFERENCES anchors(id)
);

CREATE INDEX IF NOT EXISTS idx_measurements_tag_ts ON measurements(tag_id, timestamp);
"""
