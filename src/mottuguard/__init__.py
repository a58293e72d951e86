"""mottuguard - Fleet telemetry ingestion and position prediction for UWB-tagged motorcycles."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("mottuguard")
except PackageNotFoundError:
    __version__ = "0+local"

from mottuguard.config import BrokerProfile, MottuConfig
from mottuguard.consumer import ConsumerStats, TelemetryConsumer
from mottuguard.exceptions import (
    MottuBrokerError,
    MottuConfigError,
    MottuError,
    MottuModelError,
    MottuPayloadError,
    MottuStoreError,
)
from mottuguard.health import HealthReport, HealthStatus, check_broker_health
from mottuguard.live import LiveChannel, LiveSubscription, LiveUpdate
from mottuguard.models import (
    Anchor,
    Measurement,
    ModelMetrics,
    PositionPrediction,
    PositionRecord,
    PredictOutcome,
    PredictStatus,
    Tag,
    TagStatus,
    TrainResult,
    Vehicle,
    VehicleModel,
    VehicleStatus,
)
from mottuguard.prediction import ModelArtifacts, ModelRegistry, PredictionService
from mottuguard.store import TelemetryStore

__all__ = [
    "__version__",
    "Anchor",
    "BrokerProfile",
    "ConsumerStats",
    "HealthReport",
    "HealthStatus",
    "LiveChannel",
    "LiveSubscription",
    "LiveUpdate",
    "Measurement",
    "ModelArtifacts",
    "ModelMetrics",
    "ModelRegistry",
    "MottuBrokerError",
    "MottuConfig",
    "MottuConfigError",
    "MottuError",
    "MottuModelError",
    "MottuPayloadError",
    "MottuStoreError",
    "PositionPrediction",
    "PositionRecord",
    "PredictOutcome",
    "PredictStatus",
    "PredictionService",
    "Tag",
    "TagStatus",
    "TelemetryConsumer",
    "TelemetryStore",
    "TrainResult",
    "Vehicle",
    "VehicleModel",
    "VehicleStatus",
    "check_broker_health",
]
