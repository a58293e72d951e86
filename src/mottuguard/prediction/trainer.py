"""Training of the per-axis position regressors."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import numpy as np
from sklearn.ensemble import GradientBoostingRegressor
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import train_test_split

from mottuguard._constants import DEFAULT_MIN_SAMPLES, RANDOM_SEED, REGRESSOR_PARAMS, TEST_FRACTION, WINDOW_SIZE
from mottuguard.models.predictions import TrainResult
from mottuguard.prediction.artifacts import ModelArtifacts
from mottuguard.prediction.features import TrainingSample, collect_samples, to_arrays
from mottuguard.prediction.registry import AxisMetrics, AxisModel, ModelRegistry, TrainedModel
from mottuguard.store.sqlite import TelemetryStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def default_regressor() -> GradientBoostingRegressor:
    return GradientBoostingRegressor(**REGRESSOR_PARAMS)


def _evaluate(regressor: Any, features: np.ndarray, labels: np.ndarray) -> AxisMetrics:
    predicted = regressor.predict(features)
    return AxisMetrics.from_values(
        mae=mean_absolute_error(labels, predicted),
        rmse=float(np.sqrt(mean_squared_error(labels, predicted))),
        r2=r2_score(labels, predicted),
    )


class PositionTrainer:
    """Fits one regressor per axis on windowed position histories.

    Parameters
    ----------
    store : TelemetryStore
        Source of position histories.
    registry : ModelRegistry
        Receives the new model on success.
    artifacts : ModelArtifacts, optional
        Where the model is persisted before it is published.
    regressor_factory : Callable[[], Any], optional
        Builds an unfitted scikit-learn style regressor.
    """

    def __init__(
        self,
        store: TelemetryStore,
        registry: ModelRegistry,
        artifacts: ModelArtifacts | None = None,
        *,
        regressor_factory: Callable[[], Any] = default_regressor,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._artifacts = artifacts
        self._regressor_factory = regressor_factory
        self._clock = clock

    def extract_samples(self) -> list[TrainingSample]:
        histories = self._store.position_histories(WINDOW_SIZE)
        return collect_samples(histories.values())

    def train(self, min_samples: int = DEFAULT_MIN_SAMPLES) -> TrainResult:
        """Train and publish a new model.

        Never raises: failures come back as ``success=False`` and leave the
        active model untouched.
        """
        started = time.perf_counter()
        try:
            samples = self.extract_samples()
            if len(samples) < min_samples:
                _logger.info("Training skipped: %s samples, %s required", len(samples), min_samples)
                return TrainResult(
                    success=False,
                    message=(
                        f"Insufficient training data. Found {len(samples)} samples, "
                        f"need at least {min_samples}."
                    ),
                    samples=len(samples),
                    training_seconds=time.perf_counter() - started,
                )

            with self._registry.training:
                model = self._fit(samples)
                if self._artifacts is not None:
                    self._artifacts.save(model)
                self._registry.publish(model)
        except Exception as exc:
            _logger.error("Training failed", exc_info=True)
            return TrainResult(
                success=False,
                message=f"Training failed: {exc}",
                samples=0,
                training_seconds=time.perf_counter() - started,
            )

        elapsed = time.perf_counter() - started
        _logger.info(
            "Trained position model on %s samples in %.2fs (r2_x=%s r2_y=%s)",
            model.sample_count,
            elapsed,
            model.x.metrics.r2,
            model.y.metrics.r2,
        )
        return TrainResult(
            success=True,
            message="Model trained successfully",
            samples=model.sample_count,
            mae_x=model.x.metrics.mae,
            mae_y=model.y.metrics.mae,
            r2_x=model.x.metrics.r2,
            r2_y=model.y.metrics.r2,
            training_seconds=elapsed,
        )

    def _fit(self, samples: list[TrainingSample]) -> TrainedModel:
        features, next_x, next_y = to_arrays(samples)
        (
            features_train,
            features_test,
            x_train,
            x_test,
            y_train,
            y_test,
        ) = train_test_split(features, next_x, next_y, test_size=TEST_FRACTION, random_state=RANDOM_SEED)

        regressor_x = self._regressor_factory()
        regressor_x.fit(features_train, x_train)
        regressor_y = self._regressor_factory()
        regressor_y.fit(features_train, y_train)

        return TrainedModel(
            x=AxisModel(axis="x", regressor=regressor_x, metrics=_evaluate(regressor_x, features_test, x_test)),
            y=AxisModel(axis="y", regressor=regressor_y, metrics=_evaluate(regressor_y, features_test, y_test)),
            trained_at=self._clock(),
            sample_count=len(samples),
        )
