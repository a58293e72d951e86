"""Result objects of the training / prediction surface.

Callers always receive one of these; training and prediction failures
are reported through them rather than raised.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from mottuguard.models._base import MottuBaseModel


class TrainResult(MottuBaseModel):
    """Outcome of a training request.

    Parameters
    ----------
    success : bool
        Whether a new model was published.
    message : str
        Human-readable outcome.
    samples : int
        Training samples found (all of them, before the holdout split).
    mae_x, mae_y : float or None
        Holdout mean absolute error per axis.
    r2_x, r2_y : float or None
        Holdout R² per axis.
    training_seconds : float
        Wall time spent, including sample extraction.
    """

    success: bool
    message: str
    samples: int = 0
    mae_x: float | None = None
    mae_y: float | None = None
    r2_x: float | None = None
    r2_y: float | None = None
    training_seconds: float = 0.0


class PositionPrediction(MottuBaseModel):
    """Predicted next position of one vehicle."""

    vehicle_id: int
    current_x: float
    current_y: float
    predicted_x: float
    predicted_y: float
    distance: float
    direction_degrees: float
    eta_seconds: float
    points_used: int
    predicted_at: datetime
    model_trained_at: datetime | None = None


class PredictStatus(StrEnum):
    OK = "ok"
    NOT_TRAINED = "not_trained"
    INSUFFICIENT_DATA = "insufficient_data"


class PredictOutcome(MottuBaseModel):
    """Prediction result; ``prediction`` is set only when ``status`` is ``ok``."""

    status: PredictStatus
    message: str = ""
    prediction: PositionPrediction | None = None

    @property
    def ok(self) -> bool:
        return self.status == PredictStatus.OK and self.prediction is not None


class ModelMetrics(MottuBaseModel):
    """Evaluation metrics and metadata of the active model."""

    trained: bool
    last_trained_at: datetime | None = None
    sample_count: int | None = None
    mae_x: float | None = None
    mae_y: float | None = None
    rmse_x: float | None = None
    rmse_y: float | None = None
    r2_x: float | None = None
    r2_y: float | None = None
    quality_label: str | None = None
    notes: str = ""
