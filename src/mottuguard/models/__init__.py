"""Data models for entities, telemetry payloads and prediction results."""

from mottuguard.models._base import MottuBaseModel
from mottuguard.models.entities import (
    Anchor,
    Measurement,
    PositionRecord,
    Tag,
    TagStatus,
    Vehicle,
    VehicleModel,
    VehicleStatus,
    is_tag_address,
)
from mottuguard.models.predictions import (
    ModelMetrics,
    PositionPrediction,
    PredictOutcome,
    PredictStatus,
    TrainResult,
)
from mottuguard.models.telemetry import EventPayload, PositionPayload, RangeEntry, RangingPayload

__all__ = [
    "Anchor",
    "EventPayload",
    "Measurement",
    "ModelMetrics",
    "MottuBaseModel",
    "PositionPayload",
    "PositionPrediction",
    "PositionRecord",
    "PredictOutcome",
    "PredictStatus",
    "RangeEntry",
    "RangingPayload",
    "Tag",
    "TagStatus",
    "TrainResult",
    "Vehicle",
    "VehicleModel",
    "VehicleStatus",
    "is_tag_address",
]
