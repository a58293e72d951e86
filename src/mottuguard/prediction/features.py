"""Sliding-window feature extraction over position histories.

A window is five consecutive fixes (oldest first) plus, for training, the
fix that followed them. Features are laid out in ``FEATURE_NAMES`` order.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from mottuguard._constants import FEATURE_NAMES, HISTORY_POINTS, WINDOW_SIZE
from mottuguard.models.entities import PositionRecord


@dataclass(frozen=True)
class FeatureVector:
    """Features derived from five consecutive fixes."""

    values: tuple[float, ...]
    current_x: float
    current_y: float
    avg_time_delta: float

    def as_row(self) -> np.ndarray:
        return np.asarray(self.values, dtype=float).reshape(1, -1)


@dataclass(frozen=True)
class TrainingSample:
    features: FeatureVector
    next_x: float
    next_y: float


def window_features(points: Sequence[PositionRecord]) -> FeatureVector | None:
    """Derive features from the first five *points*.

    Returns ``None`` when fewer than five points are given or when any of
    the four time deltas is not strictly positive.
    """
    if len(points) < HISTORY_POINTS:
        return None
    p = points[:HISTORY_POINTS]

    deltas = [(p[i + 1].timestamp - p[i].timestamp).total_seconds() for i in range(HISTORY_POINTS - 1)]
    if any(delta <= 0 for delta in deltas):
        return None
    avg_delta = sum(deltas) / len(deltas)

    span = avg_delta * (HISTORY_POINTS - 1)
    velocity_x = (p[4].x - p[0].x) / span
    velocity_y = (p[4].y - p[0].y) / span
    speed = math.hypot(velocity_x, velocity_y)

    # Most recent first: current, previous, position2, position3, position4.
    values = (
        p[4].x,
        p[4].y,
        p[3].x,
        p[3].y,
        p[2].x,
        p[2].y,
        p[1].x,
        p[1].y,
        p[0].x,
        p[0].y,
        velocity_x,
        velocity_y,
        avg_delta,
        speed,
    )
    return FeatureVector(values=values, current_x=p[4].x, current_y=p[4].y, avg_time_delta=avg_delta)


def training_samples(history: Sequence[PositionRecord]) -> list[TrainingSample]:
    """Every valid six-point window of one vehicle's ascending history."""
    samples: list[TrainingSample] = []
    for start in range(max(0, len(history) - HISTORY_POINTS)):
        window = history[start : start + WINDOW_SIZE]
        features = window_features(window)
        if features is None:
            continue
        label = window[HISTORY_POINTS]
        samples.append(TrainingSample(features=features, next_x=label.x, next_y=label.y))
    return samples


def collect_samples(histories: Iterable[Sequence[PositionRecord]]) -> list[TrainingSample]:
    samples: list[TrainingSample] = []
    for history in histories:
        if len(history) >= WINDOW_SIZE:
            samples.extend(training_samples(history))
    return samples


def to_arrays(samples: Sequence[TrainingSample]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Stack samples into ``(features, next_x, next_y)`` arrays."""
    if not samples:
        return np.empty((0, len(FEATURE_NAMES))), np.empty(0), np.empty(0)
    features = np.asarray([s.features.values for s in samples], dtype=float)
    next_x = np.asarray([s.next_x for s in samples], dtype=float)
    next_y = np.asarray([s.next_y for s in samples], dtype=float)
    return features, next_x, next_y
