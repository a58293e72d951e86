from __future__ import annotations

import asyncio
import math
import shutil
import threading
import time
from datetime import UTC, datetime
from typing import Any

import joblib
import numpy as np
import pytest
from conftest import Fleet, dt, seed_track
from sklearn.dummy import DummyRegressor

from mottuguard._constants import FEATURE_NAMES, MODEL_FILE_X, quality_label
from mottuguard.exceptions import MottuModelError
from mottuguard.models.predictions import PositionPrediction, PredictStatus
from mottuguard.prediction.artifacts import ModelArtifacts
from mottuguard.prediction.predictor import PositionPredictor, bearing_degrees
from mottuguard.prediction.registry import AxisMetrics, AxisModel, ModelRegistry, TrainedModel
from mottuguard.prediction.service import PredictionService, build_metrics
from mottuguard.prediction.trainer import PositionTrainer
from mottuguard.store.sqlite import TelemetryStore

_OLD = datetime(2025, 12, 1, tzinfo=UTC)


def _constant(value: float) -> DummyRegressor:
    return DummyRegressor(strategy="constant", constant=value).fit(np.zeros((1, len(FEATURE_NAMES))), [value])


def _bundle(value_x: float, value_y: float, trained_at: datetime = _OLD) -> TrainedModel:
    metrics = AxisMetrics(mae=0.1, rmse=0.2, r2=0.95)
    return TrainedModel(
        x=AxisModel(axis="x", regressor=_constant(value_x), metrics=metrics),
        y=AxisModel(axis="y", regressor=_constant(value_y), metrics=metrics),
        trained_at=trained_at,
        sample_count=123,
    )


def _seed_fleet(store: TelemetryStore, vehicles: int, points: int) -> list[int]:
    ids = []
    for i in range(vehicles):
        vehicle = store.add_vehicle(f"CHASSIS{i:03d}", f"PLT{i:04d}")
        seed_track(store, vehicle.id, points, vx=0.5 + i * 0.1, vy=0.2)
        ids.append(vehicle.id)
    return ids


# ------------------------------------------------------------------
# Trainer
# ------------------------------------------------------------------


def test_training_rejects_too_few_samples_without_side_effects(store: TelemetryStore, tmp_path: Any) -> None:
    vehicle = store.add_vehicle("CHASSIS", "PLATE01")
    seed_track(store, vehicle.id, 54)  # 49 windows
    previous = _bundle(1.0, -2.0)
    registry = ModelRegistry(previous)
    artifacts = ModelArtifacts(tmp_path / "models")

    result = PositionTrainer(store, registry, artifacts).train(min_samples=50)

    assert not result.success
    assert result.samples == 49
    assert "49" in result.message and "50" in result.message
    assert registry.current() is previous
    assert not (tmp_path / "models").exists()

    outcome = PositionPredictor(store, registry).predict(vehicle.id)
    assert outcome.ok
    assert outcome.prediction is not None
    assert (outcome.prediction.predicted_x, outcome.prediction.predicted_y) == (1.0, -2.0)
    assert outcome.prediction.model_trained_at == _OLD


def test_training_publishes_and_persists(store: TelemetryStore, tmp_path: Any) -> None:
    _seed_fleet(store, vehicles=3, points=30)
    registry = ModelRegistry()
    artifacts = ModelArtifacts(tmp_path)

    result = PositionTrainer(store, registry, artifacts).train(min_samples=50)

    assert result.success, result.message
    assert result.samples == 75
    assert result.mae_x is not None and result.mae_y is not None
    assert result.training_seconds >= 0
    model = registry.current()
    assert model is not None
    assert model.sample_count == 75
    assert artifacts.path_x.exists() and artifacts.path_y.exists() and artifacts.meta_path.exists()


def test_training_is_reproducible(store: TelemetryStore) -> None:
    _seed_fleet(store, vehicles=2, points=40)

    first = PositionTrainer(store, ModelRegistry()).train(min_samples=50)
    second = PositionTrainer(store, ModelRegistry()).train(min_samples=50)

    assert first.success and second.success
    assert first.mae_x == second.mae_x
    assert first.r2_y == second.r2_y


def test_training_failure_keeps_previous_model(store: TelemetryStore) -> None:
    _seed_fleet(store, vehicles=3, points=30)
    previous = _bundle(1.0, 1.0)
    registry = ModelRegistry(previous)

    class _Broken:
        def fit(self, *_args: Any) -> None:
            raise ValueError("solver diverged")

    result = PositionTrainer(store, registry, regressor_factory=_Broken).train(min_samples=10)

    assert not result.success
    assert result.message == "Training failed: solver diverged"
    assert registry.current() is previous


# ------------------------------------------------------------------
# Predictor
# ------------------------------------------------------------------


def test_predict_before_training_reports_not_trained(store: TelemetryStore, fleet: Fleet) -> None:
    seed_track(store, fleet.vehicle.id, 10)

    outcome = PositionPredictor(store, ModelRegistry()).predict(fleet.vehicle.id)

    assert outcome.status == PredictStatus.NOT_TRAINED
    assert outcome.prediction is None


def test_predict_with_four_points_is_insufficient(store: TelemetryStore, fleet: Fleet) -> None:
    seed_track(store, fleet.vehicle.id, 4)

    outcome = PositionPredictor(store, ModelRegistry(_bundle(0, 0))).predict(fleet.vehicle.id)

    assert outcome.status == PredictStatus.INSUFFICIENT_DATA
    assert not outcome.ok


def test_predict_with_duplicate_timestamps_is_insufficient(store: TelemetryStore, fleet: Fleet) -> None:
    for i in range(5):
        store.record_position(fleet.vehicle.id, float(i), 0.0, dt(0))

    outcome = PositionPredictor(store, ModelRegistry(_bundle(0, 0))).predict(fleet.vehicle.id)

    assert outcome.status == PredictStatus.INSUFFICIENT_DATA


def test_prediction_geometry(store: TelemetryStore, fleet: Fleet) -> None:
    seed_track(store, fleet.vehicle.id, 5, step=2.0, vx=1.0, vy=0.0)  # current fix (4, 0)

    outcome = PositionPredictor(store, ModelRegistry(_bundle(1.0, -3.0)), clock=lambda: dt(99)).predict(
        fleet.vehicle.id
    )

    assert outcome.ok
    prediction = outcome.prediction
    assert prediction is not None
    assert (prediction.current_x, prediction.current_y) == (4.0, 0.0)
    assert (prediction.predicted_x, prediction.predicted_y) == (1.0, -3.0)
    assert prediction.distance == pytest.approx(math.hypot(-3.0, -3.0))
    assert prediction.direction_degrees == pytest.approx(225.0)
    assert prediction.eta_seconds == pytest.approx(2.0)
    assert prediction.points_used == 5
    assert prediction.predicted_at == dt(99)
    assert prediction.model_trained_at == _OLD


def test_predict_uses_newest_five_of_longer_history(store: TelemetryStore, fleet: Fleet) -> None:
    seed_track(store, fleet.vehicle.id, 12, vx=1.0, vy=1.0)

    outcome = PositionPredictor(store, ModelRegistry(_bundle(0, 0))).predict(fleet.vehicle.id, history_length=10)

    assert outcome.prediction is not None
    assert outcome.prediction.current_x == 11.0
    assert outcome.prediction.points_used == 5


@pytest.mark.parametrize(
    ("dx", "dy", "expected"),
    [(1, 0, 0.0), (0, 1, 90.0), (-1, 0, 180.0), (0, -1, 270.0), (1, -1e-18, 0.0), (0, 0, 0.0)],
)
def test_bearing_is_in_range(dx: float, dy: float, expected: float) -> None:
    bearing = bearing_degrees(dx, dy)

    assert 0.0 <= bearing < 360.0
    assert bearing == pytest.approx(expected, abs=1e-9)


# ------------------------------------------------------------------
# Registry consistency
# ------------------------------------------------------------------


class _SlowConstant(DummyRegressor):
    def fit(self, X: Any, y: Any, sample_weight: Any = None) -> _SlowConstant:
        time.sleep(0.05)
        return super().fit(X, y, sample_weight)


def test_concurrent_predictions_never_see_a_mixed_model(store: TelemetryStore, fleet: Fleet) -> None:
    _seed_fleet(store, vehicles=2, points=20)
    seed_track(store, fleet.vehicle.id, 8)
    new_trained_at = datetime(2026, 6, 1, tzinfo=UTC)
    registry = ModelRegistry(_bundle(1.0, 1.0))
    trainer = PositionTrainer(
        store,
        registry,
        regressor_factory=lambda: _SlowConstant(strategy="constant", constant=2.0),
        clock=lambda: new_trained_at,
    )
    predictor = PositionPredictor(store, registry)
    seen: list[PositionPrediction | None] = []
    done = threading.Event()

    def reader() -> None:
        while not done.is_set():
            seen.append(predictor.predict(fleet.vehicle.id).prediction)

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        result = trainer.train(min_samples=10)
    finally:
        done.set()
        thread.join()

    assert result.success
    assert seen
    for prediction in seen:
        assert prediction is not None
        observed = (prediction.model_trained_at, prediction.predicted_x, prediction.predicted_y)
        assert observed in {(_OLD, 1.0, 1.0), (new_trained_at, 2.0, 2.0)}
    latest = predictor.predict(fleet.vehicle.id).prediction
    assert latest is not None
    assert latest.model_trained_at == new_trained_at


# ------------------------------------------------------------------
# Artifacts
# ------------------------------------------------------------------


def test_artifacts_roundtrip(tmp_path: Any) -> None:
    artifacts = ModelArtifacts(tmp_path)
    artifacts.save(_bundle(3.0, 4.0))

    loaded = artifacts.load()

    row = np.zeros((1, len(FEATURE_NAMES)))
    assert loaded.x.predict(row) == 3.0
    assert loaded.y.predict(row) == 4.0
    assert loaded.trained_at == _OLD
    assert loaded.sample_count == 123
    assert loaded.x.metrics.r2 == 0.95
    assert not list(tmp_path.glob("*.tmp"))


def test_artifacts_need_both_axes(tmp_path: Any) -> None:
    artifacts = ModelArtifacts(tmp_path)
    artifacts.save(_bundle(3.0, 4.0))
    artifacts.path_y.unlink()

    assert artifacts.load_if_present() is None


def test_artifacts_unreadable_blob(tmp_path: Any) -> None:
    artifacts = ModelArtifacts(tmp_path)
    artifacts.save(_bundle(3.0, 4.0))
    (tmp_path / MODEL_FILE_X).write_bytes(b"corrupted")

    assert artifacts.load_if_present() is None


def test_failed_save_keeps_previous_pair_on_disk(tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> None:
    artifacts = ModelArtifacts(tmp_path)
    artifacts.save(_bundle(1.0, 1.0))
    real_dump = joblib.dump
    calls = []

    def failing_dump(value: Any, filename: Any, **kwargs: Any) -> Any:
        calls.append(filename)
        if len(calls) == 2:
            raise OSError("disk full")
        return real_dump(value, filename, **kwargs)

    monkeypatch.setattr(joblib, "dump", failing_dump)
    with pytest.raises(MottuModelError):
        artifacts.save(_bundle(2.0, 2.0, trained_at=datetime(2026, 6, 1, tzinfo=UTC)))
    monkeypatch.undo()

    reloaded = ModelArtifacts(tmp_path).load()

    row = np.zeros((1, len(FEATURE_NAMES)))
    assert (reloaded.x.predict(row), reloaded.y.predict(row)) == (1.0, 1.0)
    assert reloaded.trained_at == _OLD
    assert not list(tmp_path.glob("*.tmp"))


def test_half_replaced_directory_is_not_loaded(tmp_path: Any) -> None:
    old = ModelArtifacts(tmp_path / "old")
    old.save(_bundle(1.0, 1.0))
    new = ModelArtifacts(tmp_path / "new")
    new.save(_bundle(2.0, 2.0))
    # New X blob in place, old Y blob and old sidecar still there.
    shutil.copyfile(new.path_x, old.path_x)

    with pytest.raises(MottuModelError, match=MODEL_FILE_X):
        old.load()
    assert old.load_if_present() is None


# ------------------------------------------------------------------
# Service / metrics
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    ("avg_r2", "label"),
    [(0.95, "Excellent"), (0.9, "Good"), (0.71, "Good"), (0.7, "Fair"), (0.51, "Fair"), (0.5, "Poor"), (-1, "Poor")],
)
def test_quality_label_buckets(avg_r2: float, label: str) -> None:
    assert quality_label(avg_r2) == label


def test_metrics_without_model() -> None:
    metrics = build_metrics(None)

    assert not metrics.trained
    assert metrics.quality_label is None
    assert "train" in metrics.notes


def test_metrics_with_undefined_r2() -> None:
    model = _bundle(1.0, 1.0)
    undefined = TrainedModel(
        x=AxisModel(axis="x", regressor=model.x.regressor, metrics=AxisMetrics.from_values(0.1, 0.2, math.nan)),
        y=model.y,
        trained_at=model.trained_at,
        sample_count=model.sample_count,
    )

    metrics = build_metrics(undefined)

    assert metrics.trained
    assert metrics.r2_x is None
    assert metrics.quality_label is None


@pytest.mark.asyncio
async def test_service_reloads_persisted_model(store: TelemetryStore, tmp_path: Any) -> None:
    vehicle_ids = _seed_fleet(store, vehicles=3, points=30)
    trained = PredictionService(store, artifacts=ModelArtifacts(tmp_path))
    result = await trained.train_model(50)
    assert result.success

    restarted = PredictionService(store, artifacts=ModelArtifacts(tmp_path))
    assert not restarted.is_trained()
    assert restarted.load_persisted()
    assert restarted.is_trained()

    metrics = await restarted.get_metrics()
    assert metrics.trained
    assert metrics.sample_count == 75
    assert metrics.quality_label in {"Excellent", "Good", "Fair", "Poor"}

    outcomes = await asyncio.gather(*(restarted.predict_next(vid) for vid in vehicle_ids))
    assert all(outcome.ok for outcome in outcomes)
