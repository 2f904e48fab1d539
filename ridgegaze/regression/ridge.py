"""
ridgegaze/regression/ridge.py — Regularised least-squares gaze regression.

Solves ``W = (XᵀX + λI)⁻¹ XᵀY`` where each row of ``X`` is an eye feature
vector with a trailing bias column and ``Y`` holds the screen x, y targets.
λ > 0 keeps the system invertible when near-duplicate samples make ``XᵀX``
rank deficient.

Click-sourced and move-sourced examples are kept in separate FIFO windows so
continuous mouse motion cannot evict the higher-confidence click labels.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np

from ridgegaze.core.config import RegressionConfig
from ridgegaze.core.data_window import DataWindow
from ridgegaze.core.types import DataPoint, EventType, EyeFeatures, Point
from ridgegaze.regression.base import RegressionModel
from ridgegaze.regression.features import Featurizer, make_featurizer

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────
# Linear algebra helpers
# ──────────────────────────────────────────

def add_bias(X: np.ndarray) -> np.ndarray:
    """Append a column of ones to ``X`` (or a single 1 to a 1-D vector)."""
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        return np.append(X, 1.0)
    return np.hstack([X, np.ones((X.shape[0], 1))])


def ridge_solve(
    X: np.ndarray,
    Y: np.ndarray,
    ridge_lambda: float,
    sample_weights: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Fit ridge regression weights with an appended bias term.

    Args:
        X: Feature matrix of shape ``(n_samples, n_features)``.
        Y: Targets of shape ``(n_samples, n_outputs)``.
        ridge_lambda: Regularisation strength λ (> 0).
        sample_weights: Optional per-row weights (the diagonal of Ω).

    Returns:
        Weight matrix of shape ``(n_features + 1, n_outputs)``; the last row
        is the bias.
    """
    Xb = add_bias(X)
    Y = np.asarray(Y, dtype=np.float64)
    if sample_weights is None:
        xtx = Xb.T @ Xb
        xty = Xb.T @ Y
    else:
        w = np.asarray(sample_weights, dtype=np.float64)[:, None]
        xtx = Xb.T @ (w * Xb)
        xty = Xb.T @ (w * Y)
    a = xtx + ridge_lambda * np.eye(Xb.shape[1])
    try:
        return np.linalg.solve(a, xty)
    except np.linalg.LinAlgError:
        # Fall back to least squares if the system is numerically singular
        return np.linalg.lstsq(a, xty, rcond=None)[0]


# ──────────────────────────────────────────
# Training set
# ──────────────────────────────────────────

@dataclass(frozen=True)
class Sample:
    """A stored training example with its precomputed feature vector."""

    seq: int
    point: DataPoint
    vector: Optional[np.ndarray]


class TrainingSet:
    """
    Bounded training data: a click window plus a move ("trail") window.

    Args:
        data_window: Capacity of the click window.
        trail_window: Capacity of the move window.
    """

    def __init__(self, data_window: int, trail_window: int) -> None:
        self._clicks: DataWindow[Sample] = DataWindow(data_window)
        self._trail: DataWindow[Sample] = DataWindow(trail_window)
        self._seq = itertools.count()

    def add(self, point: DataPoint, vector: Optional[np.ndarray] = None) -> None:
        window = self._clicks if point.event_type is EventType.CLICK else self._trail
        window.push(Sample(seq=next(self._seq), point=point, vector=vector))

    def samples(self) -> list[Sample]:
        """All retained samples in insertion order."""
        return sorted(self._clicks.data + self._trail.data, key=lambda s: s.seq)

    def matrices(self) -> tuple[np.ndarray, np.ndarray, list[Sample]]:
        """Return ``(X, Y, samples)`` stacked in insertion order."""
        samples = self.samples()
        X = np.vstack([s.vector for s in samples])
        Y = np.array([s.point.screen_position for s in samples], dtype=np.float64)
        return X, Y, samples

    def clear(self) -> None:
        self._clicks.clear()
        self._trail.clear()

    def __len__(self) -> int:
        return len(self._clicks) + len(self._trail)


def make_point(
    features: EyeFeatures,
    target: Sequence[float],
    event_type: EventType | str,
) -> DataPoint:
    """Build a :class:`DataPoint` from ``add_data`` arguments."""
    return DataPoint(
        eye_features=features,
        screen_position=Point(float(target[0]), float(target[1])),
        event_type=EventType(event_type),
    )


# ──────────────────────────────────────────
# Basic variant
# ──────────────────────────────────────────

class RidgeRegression(RegressionModel):
    """
    Ridge regressor refitted synchronously on every :meth:`add_data`.

    Args:
        config: Regression hyper-parameters; defaults if omitted.
        featurizer: Callable mapping :class:`EyeFeatures` to a 1-D vector.
            Defaults to the grayscale eye-patch grid of
            :func:`~ridgegaze.regression.features.eye_feature_vector`.
    """

    name = "ridge"

    def __init__(
        self,
        config: Optional[RegressionConfig] = None,
        featurizer: Optional[Featurizer] = None,
    ) -> None:
        self._cfg = config or RegressionConfig()
        self._featurizer = featurizer or make_featurizer(
            self._cfg.resize_width, self._cfg.resize_height
        )
        self._training = TrainingSet(self._cfg.data_window, self._cfg.trail_window)
        self._weights: Optional[np.ndarray] = None

    # ──────────────────────────────────────────
    # RegressionModel API
    # ──────────────────────────────────────────

    def add_data(
        self,
        features: EyeFeatures,
        target: Sequence[float],
        event_type: EventType | str = EventType.CLICK,
    ) -> None:
        if features is None:
            return
        point = make_point(features, target, event_type)
        self._training.add(point, self._featurizer(features))
        self._refit()

    def predict(self, features: Optional[EyeFeatures]) -> Optional[Point]:
        if features is None or self._weights is None:
            return None
        return self._apply(self._weights, features)

    def get_data(self) -> list[DataPoint]:
        return [s.point for s in self._training.samples()]

    def set_data(self, data: Iterable[DataPoint]) -> None:
        self.init()
        for point in data:
            self._training.add(point, self._featurizer(point.eye_features))
        self._refit()
        logger.debug("%s seeded with %d samples", self.name, len(self._training))

    def init(self) -> None:
        self._training.clear()
        self._weights = None

    @property
    def is_fitted(self) -> bool:
        return self._weights is not None

    @property
    def weights(self) -> Optional[np.ndarray]:
        """Current ``(d + 1, 2)`` weight matrix, bias in the last row."""
        return self._weights

    # ──────────────────────────────────────────
    # Fitting
    # ──────────────────────────────────────────

    def _sample_weights(self, samples: list[Sample]) -> Optional[np.ndarray]:
        """Diagonal of Ω for the weighted variant; ``None`` means unweighted."""
        return None

    def _refit(self) -> None:
        if len(self._training) == 0:
            self._weights = None
            return
        X, Y, samples = self._training.matrices()
        self._weights = ridge_solve(
            X, Y, self._cfg.ridge_lambda, self._sample_weights(samples)
        )

    def _apply(self, weights: np.ndarray, features: EyeFeatures) -> Point:
        x, y = add_bias(self._featurizer(features)) @ weights
        return Point(float(x), float(y))
