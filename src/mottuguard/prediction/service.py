"""Async facade over training, prediction and model metrics."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from mottuguard._constants import DEFAULT_HISTORY_LENGTH, DEFAULT_MIN_SAMPLES, quality_label
from mottuguard.models.predictions import ModelMetrics, PredictOutcome, TrainResult
from mottuguard.prediction.artifacts import ModelArtifacts
from mottuguard.prediction.predictor import PositionPredictor
from mottuguard.prediction.registry import ModelRegistry, TrainedModel
from mottuguard.prediction.trainer import PositionTrainer
from mottuguard.store.sqlite import TelemetryStore

_T = TypeVar("_T")

_logger = logging.getLogger(__name__)


def build_metrics(model: TrainedModel | None) -> ModelMetrics:
    """Describe *model* (or the absence of one)."""
    if model is None:
        return ModelMetrics(
            trained=False,
            notes="Model not yet trained. Use the train endpoint to train the model.",
        )

    mx, my = model.x.metrics, model.y.metrics
    label: str | None = None
    notes = f"Model uses gradient-boosted trees with {model.sample_count} training samples."
    if mx.r2 is not None and my.r2 is not None:
        avg_r2 = (mx.r2 + my.r2) / 2.0
        label = quality_label(avg_r2)
        notes += f" Average R² score: {avg_r2:.3f}"
    else:
        notes += " Holdout R² is undefined for this model."

    return ModelMetrics(
        trained=True,
        last_trained_at=model.trained_at,
        sample_count=model.sample_count,
        mae_x=mx.mae,
        mae_y=my.mae,
        rmse_x=mx.rmse,
        rmse_y=my.rmse,
        r2_x=mx.r2,
        r2_y=my.r2,
        quality_label=label,
        notes=notes,
    )


class PredictionService:
    """Owns the model registry and exposes the train / predict surface.

    Blocking work (store reads, fitting, inference) runs in the default
    executor so request handlers stay responsive.
    """

    def __init__(
        self,
        store: TelemetryStore,
        *,
        artifacts: ModelArtifacts | None = None,
        registry: ModelRegistry | None = None,
        trainer: PositionTrainer | None = None,
        predictor: PositionPredictor | None = None,
    ) -> None:
        self.registry = registry or ModelRegistry()
        self.artifacts = artifacts
        self._trainer = trainer or PositionTrainer(store, self.registry, artifacts)
        self._predictor = predictor or PositionPredictor(store, self.registry)

    def load_persisted(self) -> bool:
        """Adopt a persisted model if both regressors load; returns whether one was loaded."""
        if self.artifacts is None:
            return False
        model = self.artifacts.load_if_present()
        if model is None:
            return False
        self.registry.publish(model)
        _logger.info("Loaded persisted position model trained at %s", model.trained_at.isoformat())
        return True

    async def _run(self, func: Callable[..., _T], *args: Any) -> _T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def train_model(self, min_samples: int = DEFAULT_MIN_SAMPLES) -> TrainResult:
        return await self._run(self._trainer.train, min_samples)

    async def predict_next(self, vehicle_id: int, history_length: int = DEFAULT_HISTORY_LENGTH) -> PredictOutcome:
        return await self._run(self._predictor.predict, vehicle_id, history_length)

    def is_trained(self) -> bool:
        return self.registry.is_trained()

    async def get_metrics(self) -> ModelMetrics:
        return build_metrics(self.registry.current())
