"""Position prediction: feature windowing, training, inference."""

from mottuguard.prediction.artifacts import ModelArtifacts
from mottuguard.prediction.predictor import PositionPredictor
from mottuguard.prediction.registry import AxisMetrics, AxisModel, ModelRegistry, TrainedModel
from mottuguard.prediction.service import PredictionService, build_metrics
from mottuguard.prediction.trainer import PositionTrainer

__all__ = [
    "AxisMetrics",
    "AxisModel",
    "ModelArtifacts",
    "ModelRegistry",
    "PositionPredictor",
    "PositionTrainer",
    "PredictionService",
    "TrainedModel",
    "build_metrics",
]
