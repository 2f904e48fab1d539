"""
ridgegaze/regression/weighted.py — Ridge regression with per-sample weights.

Each training row gets ``w = recency(age) × type_multiplier(event_type)``
where ``age`` is the row's rank from the newest sample (newest = 0). The
solve uses ``XᵀΩX`` and ``XᵀΩY`` with ``Ω = diag(w)``.
"""

from __future__ import annotations

import math
from typing import Callable, Optional, Sequence

import numpy as np

from ridgegaze.core.config import RegressionConfig, WeightingConfig
from ridgegaze.core.types import EventType
from ridgegaze.regression.features import Featurizer
from ridgegaze.regression.ridge import RidgeRegression, Sample


def _inverse_sqrt(age: int, half_life: float) -> float:
    return math.sqrt(1.0 / (age + 1))


def _exponential(age: int, half_life: float) -> float:
    return 0.5 ** (age / half_life)


def _flat(age: int, half_life: float) -> float:
    return 1.0


_RECENCY: dict[str, Callable[[int, float], float]] = {
    "inverse_sqrt": _inverse_sqrt,
    "exponential": _exponential,
    "none": _flat,
}


def sample_weights(samples: Sequence[Sample], weighting: WeightingConfig) -> np.ndarray:
    """
    Compute the diagonal of Ω for samples given oldest first.

    Args:
        samples: Training samples in insertion order.
        weighting: Decay rule and event-type multipliers.

    Returns:
        1-D array of positive weights, one per sample.
    """
    recency = _RECENCY[weighting.decay]
    n = len(samples)
    weights = np.empty(n, dtype=np.float64)
    for i, sample in enumerate(samples):
        age = n - 1 - i
        multiplier = (
            weighting.click_weight
            if sample.point.event_type is EventType.CLICK
            else weighting.move_weight
        )
        weights[i] = recency(age, weighting.half_life) * multiplier
    return weights


class WeightedRidgeRegression(RidgeRegression):
    """
    Ridge regressor favouring recent and click-sourced examples.

    Same interface and windows as :class:`RidgeRegression`; only the
    normal equations change.
    """

    name = "weighted_ridge"

    def __init__(
        self,
        config: Optional[RegressionConfig] = None,
        featurizer: Optional[Featurizer] = None,
    ) -> None:
        super().__init__(config, featurizer)
        self._weighting = self._cfg.weighting

    def _sample_weights(self, samples: list[Sample]) -> Optional[np.ndarray]:
        return sample_weights(samples, self._weighting)
