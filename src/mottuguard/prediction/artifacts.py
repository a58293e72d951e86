"""Persistence of trained models.

Layout inside the model directory::

    position_prediction_x.joblib
    position_prediction_y.joblib
    position_prediction_meta.json   (run_id, checksums, trained_at, sample_count, metrics, feature_names)

A save first writes all three files to temporary siblings and only then
moves them into place with ``os.replace``, the sidecar last. The sidecar
records the SHA-256 of both blobs, so a directory left half-replaced by a
crash never loads as a mixed pair.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

import joblib

from mottuguard._constants import FEATURE_NAMES, MODEL_FILE_X, MODEL_FILE_Y, MODEL_META_FILE
from mottuguard.exceptions import MottuModelError
from mottuguard.prediction.registry import AxisMetrics, AxisModel, TrainedModel

_logger = logging.getLogger(__name__)


def _tmp_path(target: Path) -> Path:
    return target.with_name(f"{target.name}.tmp")


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(1 << 16), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _metrics_from_meta(meta: dict[str, Any], axis: str) -> AxisMetrics:
    raw = meta.get("metrics", {}).get(axis) or {}
    return AxisMetrics(mae=raw.get("mae"), rmse=raw.get("rmse"), r2=raw.get("r2"))


class ModelArtifacts:
    """Reads and writes the two axis regressors plus their metadata sidecar."""

    def __init__(self, model_dir: str | os.PathLike[str]) -> None:
        self.model_dir = Path(model_dir)

    @property
    def path_x(self) -> Path:
        return self.model_dir / MODEL_FILE_X

    @property
    def path_y(self) -> Path:
        return self.model_dir / MODEL_FILE_Y

    @property
    def meta_path(self) -> Path:
        return self.model_dir / MODEL_META_FILE

    def save(self, model: TrainedModel) -> str:
        """Persist *model* and return its run id.

        Raises :class:`MottuModelError` on I/O failure. A failure while the
        files are still being written leaves the previous model untouched.
        """
        run_id = uuid.uuid4().hex
        staged = [_tmp_path(path) for path in (self.path_x, self.path_y, self.meta_path)]
        tmp_x, tmp_y, tmp_meta = staged
        try:
            self.model_dir.mkdir(parents=True, exist_ok=True)
            joblib.dump(model.x.regressor, tmp_x, compress=3)
            joblib.dump(model.y.regressor, tmp_y, compress=3)
            meta = {
                "run_id": run_id,
                "checksums": {"x": _sha256(tmp_x), "y": _sha256(tmp_y)},
                "trained_at": model.trained_at.isoformat(),
                "sample_count": model.sample_count,
                "feature_names": list(FEATURE_NAMES),
                "metrics": {"x": model.x.metrics.to_dict(), "y": model.y.metrics.to_dict()},
            }
            tmp_meta.write_text(json.dumps(meta, indent=2), encoding="utf-8")

            os.replace(tmp_x, self.path_x)
            os.replace(tmp_y, self.path_y)
            os.replace(tmp_meta, self.meta_path)
        except OSError as exc:
            raise MottuModelError(f"Could not save model to {self.model_dir}: {exc}") from exc
        finally:
            for path in staged:
                if path.exists():
                    path.unlink()
        _logger.info("Saved position model run=%s to %s (%s samples)", run_id, self.model_dir, model.sample_count)
        return run_id

    def _read_meta(self) -> dict[str, Any]:
        if not self.meta_path.exists():
            raise MottuModelError(f"No model metadata in {self.model_dir}")
        try:
            meta = json.loads(self.meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise MottuModelError(f"Unreadable model metadata {self.meta_path}: {exc}") from exc
        if not isinstance(meta, dict):
            raise MottuModelError(f"Unreadable model metadata {self.meta_path}")
        return meta

    def load(self) -> TrainedModel:
        """Load both regressors of the run recorded in the sidecar.

        Raises
        ------
        MottuModelError
            If either blob is missing, unreadable or not the one the sidecar
            was written for, or the sidecar names a different feature layout.
        """
        if not self.path_x.exists() or not self.path_y.exists():
            raise MottuModelError(f"No complete model in {self.model_dir}")
        meta = self._read_meta()

        names = meta.get("feature_names")
        if names is None or list(names) != list(FEATURE_NAMES):
            raise MottuModelError("Persisted model was trained on a different feature layout")

        checksums = meta.get("checksums") or {}
        for axis, path in (("x", self.path_x), ("y", self.path_y)):
            if checksums.get(axis) != _sha256(path):
                raise MottuModelError(f"{path.name} does not belong to model run {meta.get('run_id')}")

        try:
            regressor_x = joblib.load(self.path_x)
            regressor_y = joblib.load(self.path_y)
        except Exception as exc:
            raise MottuModelError(f"Could not load model from {self.model_dir}: {exc}") from exc

        trained_at_raw = meta.get("trained_at")
        try:
            trained_at = datetime.fromisoformat(str(trained_at_raw))
        except ValueError as exc:
            raise MottuModelError(f"Invalid trained_at in {self.meta_path}: {trained_at_raw!r}") from exc

        return TrainedModel(
            x=AxisModel(axis="x", regressor=regressor_x, metrics=_metrics_from_meta(meta, "x")),
            y=AxisModel(axis="y", regressor=regressor_y, metrics=_metrics_from_meta(meta, "y")),
            trained_at=trained_at,
            sample_count=int(meta.get("sample_count") or 0),
        )

    def load_if_present(self) -> TrainedModel | None:
        """Best-effort startup load: ``None`` unless both regressors load."""
        try:
            return self.load()
        except MottuModelError:
            _logger.debug("No persisted model loaded from %s", self.model_dir, exc_info=True)
            return None
