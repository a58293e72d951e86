"""Holder of the active trained model.

The active model is a single immutable :class:`TrainedModel`; publishing a
new one swaps one reference, so a reader holds either the old bundle or
the new bundle in full.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import numpy as np


@dataclass(frozen=True)
class AxisMetrics:
    """Holdout metrics of one axis regressor; ``None`` where undefined."""

    mae: float | None
    rmse: float | None
    r2: float | None

    @classmethod
    def from_values(cls, mae: float, rmse: float, r2: float) -> AxisMetrics:
        return cls(mae=_finite_or_none(mae), rmse=_finite_or_none(rmse), r2=_finite_or_none(r2))

    def to_dict(self) -> dict[str, float | None]:
        return {"mae": self.mae, "rmse": self.rmse, "r2": self.r2}


def _finite_or_none(value: Any) -> float | None:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


@dataclass(frozen=True)
class AxisModel:
    axis: str
    regressor: Any
    metrics: AxisMetrics

    def predict(self, rows: np.ndarray) -> float:
        return float(self.regressor.predict(rows)[0])


@dataclass(frozen=True)
class TrainedModel:
    """Both axis regressors with the metadata of the run that produced them."""

    x: AxisModel
    y: AxisModel
    trained_at: datetime
    sample_count: int


class ModelRegistry:
    """Single-writer / many-reader holder of the active :class:`TrainedModel`.

    ``training`` is the exclusive section a trainer holds for its whole
    fit/evaluate/persist/publish sequence. Reads and the final swap only
    take the short internal lock, so predictions are not held up by a
    training run in progress.
    """

    def __init__(self, model: TrainedModel | None = None) -> None:
        self._lock = threading.Lock()
        self.training = threading.Lock()
        self._model = model

    def current(self) -> TrainedModel | None:
        with self._lock:
            return self._model

    def is_trained(self) -> bool:
        return self.current() is not None

    def publish(self, model: TrainedModel) -> None:
        with self._lock:
            self._model = model
