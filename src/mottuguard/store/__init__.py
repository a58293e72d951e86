"""Persistent telemetry store."""

from mottuguard.store.sqlite import MeasurementRow, TelemetryStore, get_connection

__all__ = ["MeasurementRow", "TelemetryStore", "get_connection"]
