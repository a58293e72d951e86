from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import seed_track

from mottuguard.__main__ import main
from mottuguard.store.sqlite import TelemetryStore


def _seed(db_path: Path, vehicles: int = 3, points: int = 30) -> list[int]:
    store = TelemetryStore(str(db_path))
    try:
        ids = []
        for i in range(vehicles):
            vehicle = store.add_vehicle(f"CHASSIS{i:03d}", f"PLT{i:04d}")
            seed_track(store, vehicle.id, points, vx=0.3 + 0.1 * i)
            ids.append(vehicle.id)
        return ids
    finally:
        store.close()


def test_cli_train_predict_metrics(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db_path = tmp_path / "telemetry.db"
    model_dir = tmp_path / "models"
    vehicle_ids = _seed(db_path)
    base = ["--db", str(db_path), "--model-dir", str(model_dir)]

    assert main([*base, "train", "--min-samples", "50"]) == 0
    trained = json.loads(capsys.readouterr().out)
    assert trained["success"] is True

    assert main([*base, "predict", str(vehicle_ids[1])]) == 0
    prediction = json.loads(capsys.readouterr().out)
    assert prediction["vehicleId"] == vehicle_ids[1]

    assert main([*base, "metrics"]) == 0
    metrics = json.loads(capsys.readouterr().out)
    assert metrics["trained"] is True
    assert metrics["sampleCount"] == trained["samples"]


def test_cli_reports_failures(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    base = ["--db", str(tmp_path / "empty.db"), "--model-dir", str(tmp_path / "models")]

    assert main([*base, "train"]) == 1
    assert json.loads(capsys.readouterr().out)["success"] is False

    assert main([*base, "train", "--min-samples", "3"]) == 2
    assert main([*base, "predict", "1", "--history-length", "11"]) == 2
    assert "--history-length" in capsys.readouterr().err

    assert main([*base, "predict", "1"]) == 1
    assert capsys.readouterr().err.strip().startswith("not_trained")
