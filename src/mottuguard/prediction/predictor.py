"""Next-position prediction for a single vehicle."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime

from mottuguard._constants import DEFAULT_HISTORY_LENGTH, HISTORY_POINTS
from mottuguard.models.predictions import PositionPrediction, PredictOutcome, PredictStatus
from mottuguard.prediction.features import window_features
from mottuguard.prediction.registry import ModelRegistry
from mottuguard.store.sqlite import TelemetryStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def bearing_degrees(dx: float, dy: float) -> float:
    """Direction of travel in degrees, counter-clockwise from +x, in ``[0, 360)``."""
    angle = math.degrees(math.atan2(dy, dx)) % 360.0
    # a tiny negative angle wraps to exactly 360.0
    return 0.0 if angle >= 360.0 else angle


class PositionPredictor:
    def __init__(
        self,
        store: TelemetryStore,
        registry: ModelRegistry,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._clock = clock

    def predict(self, vehicle_id: int, history_length: int = DEFAULT_HISTORY_LENGTH) -> PredictOutcome:
        """Predict the next fix of *vehicle_id*.

        Loads the ``history_length`` most recent records and derives features
        from the newest five of them.
        """
        # One read of the reference: both axes and the metadata come from the same bundle.
        model = self._registry.current()
        if model is None:
            return PredictOutcome(status=PredictStatus.NOT_TRAINED, message="Model is not trained yet")

        history = self._store.recent_positions(vehicle_id, max(history_length, HISTORY_POINTS))
        if len(history) < HISTORY_POINTS:
            return PredictOutcome(
                status=PredictStatus.INSUFFICIENT_DATA,
                message=(
                    f"Vehicle {vehicle_id} has {len(history)} position records, "
                    f"at least {HISTORY_POINTS} are required"
                ),
            )

        recent = history[-HISTORY_POINTS:]
        features = window_features(recent)
        if features is None:
            return PredictOutcome(
                status=PredictStatus.INSUFFICIENT_DATA,
                message=f"Vehicle {vehicle_id} has non-increasing timestamps in its recent history",
            )

        row = features.as_row()
        predicted_x = model.x.predict(row)
        predicted_y = model.y.predict(row)
        dx = predicted_x - features.current_x
        dy = predicted_y - features.current_y

        prediction = PositionPrediction(
            vehicle_id=vehicle_id,
            current_x=features.current_x,
            current_y=features.current_y,
            predicted_x=predicted_x,
            predicted_y=predicted_y,
            distance=math.hypot(dx, dy),
            direction_degrees=bearing_degrees(dx, dy),
            eta_seconds=features.avg_time_delta,
            points_used=len(recent),
            predicted_at=self._clock(),
            model_trained_at=model.trained_at,
        )
        _logger.debug(
            "Predicted vehicle=%s next=(%.3f, %.3f) distance=%.3f",
            vehicle_id,
            predicted_x,
            predicted_y,
            prediction.distance,
        )
        return PredictOutcome(status=PredictStatus.OK, prediction=prediction)
