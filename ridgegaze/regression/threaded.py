"""
ridgegaze/regression/threaded.py — Ridge regression solved off the gaze loop.

The matrix solve runs in a :class:`WorkerBridge` thread. :meth:`predict`
never waits for it: it installs whatever weights have arrived since the last
call and applies them, so predictions may lag one solve behind the newest
training example.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Iterable, Optional, Sequence

import numpy as np

from ridgegaze.core.config import RegressionConfig
from ridgegaze.core.types import DataPoint, EventType, EyeFeatures, Point
from ridgegaze.regression.base import RegressionModel
from ridgegaze.regression.features import Featurizer, make_featurizer
from ridgegaze.regression.ridge import TrainingSet, add_bias, make_point, ridge_solve
from ridgegaze.regression.worker import (
    AddMessage,
    PredictMessage,
    ResetMessage,
    SetDataMessage,
    WeightsMessage,
    WorkerBridge,
)

logger = logging.getLogger(__name__)


class RidgeWorker:
    """
    Message handler executed inside the worker thread.

    Owns its own training set and weights; new weights are only installed
    after a solve succeeds.
    """

    def __init__(self, config: RegressionConfig, featurizer: Featurizer) -> None:
        self._cfg = config
        self._featurizer = featurizer
        self._training = TrainingSet(config.data_window, config.trail_window)
        self._weights: Optional[np.ndarray] = None

    def __call__(self, message: Any) -> Any:
        if isinstance(message, AddMessage):
            point = message.point
            self._training.add(point, self._featurizer(point.eye_features))
            return self._solve(message.generation)
        if isinstance(message, PredictMessage):
            if self._weights is None or message.features is None:
                return None
            x, y = add_bias(self._featurizer(message.features)) @ self._weights
            return Point(float(x), float(y))
        if isinstance(message, SetDataMessage):
            training = TrainingSet(self._cfg.data_window, self._cfg.trail_window)
            for point in message.points:
                training.add(point, self._featurizer(point.eye_features))
            self._training = training
            return self._solve(message.generation)
        if isinstance(message, ResetMessage):
            self._training.clear()
            self._weights = None
            return WeightsMessage(weights=None, n_samples=0, generation=message.generation)
        raise TypeError(f"Unsupported worker message: {type(message).__name__}")

    def _solve(self, generation: int) -> WeightsMessage:
        if len(self._training) == 0:
            self._weights = None
            return WeightsMessage(weights=None, n_samples=0, generation=generation)
        X, Y, _ = self._training.matrices()
        weights = ridge_solve(X, Y, self._cfg.ridge_lambda)
        self._weights = weights
        return WeightsMessage(
            weights=weights.copy(), n_samples=len(self._training), generation=generation
        )


class ThreadedRidgeRegression(RegressionModel):
    """
    Ridge regressor whose refits run in a background worker thread.

    Args:
        config: Regression hyper-parameters; defaults if omitted.
        featurizer: Callable mapping :class:`EyeFeatures` to a 1-D vector.
    """

    name = "threaded_ridge"

    def __init__(
        self,
        config: Optional[RegressionConfig] = None,
        featurizer: Optional[Featurizer] = None,
    ) -> None:
        self._cfg = config or RegressionConfig()
        self._featurizer = featurizer or make_featurizer(
            self._cfg.resize_width, self._cfg.resize_height
        )
        # Mirror of the worker's windows so get_data() never crosses threads
        self._local = TrainingSet(self._cfg.data_window, self._cfg.trail_window)
        self._weights: Optional[np.ndarray] = None
        # Bumped on every reset; replies from older generations are stale
        self._generation = 0
        self._bridge = WorkerBridge(
            RidgeWorker(self._cfg, self._featurizer), name=f"ridgegaze-{self.name}"
        )
        self._bridge.start()

    def add_data(
        self,
        features: EyeFeatures,
        target: Sequence[float],
        event_type: EventType | str = EventType.CLICK,
    ) -> None:
        if features is None:
            return
        point = make_point(features, target, event_type)
        self._local.add(point)
        self._bridge.post(AddMessage(point, self._generation))

    def predict(self, features: Optional[EyeFeatures]) -> Optional[Point]:
        self._install_replies()
        if features is None or self._weights is None:
            return None
        x, y = add_bias(self._featurizer(features)) @ self._weights
        return Point(float(x), float(y))

    def predict_async(self, features: EyeFeatures) -> Future:
        """
        Ask the worker for a prediction, answered after all earlier messages.

        Returns:
            A Future resolving to a :class:`Point` or ``None``.
        """
        return self._bridge.request(PredictMessage(features))

    def get_data(self) -> list[DataPoint]:
        return [s.point for s in self._local.samples()]

    def set_data(self, data: Iterable[DataPoint]) -> None:
        points = tuple(data)
        self._local.clear()
        for point in points:
            self._local.add(point)
        self._weights = None
        self._generation += 1
        self._bridge.post(SetDataMessage(points, self._generation))

    def init(self) -> None:
        self._local.clear()
        self._weights = None
        self._generation += 1
        self._bridge.post(ResetMessage(self._generation))

    @property
    def is_fitted(self) -> bool:
        self._install_replies()
        return self._weights is not None

    @property
    def failures(self) -> int:
        """Number of messages the worker failed to handle."""
        return self._bridge.failures

    def close(self) -> None:
        self._bridge.stop()

    def _install_replies(self) -> None:
        # Replies arrive in submission order; the last one is the newest solve
        for reply in self._bridge.poll():
            if isinstance(reply, WeightsMessage) and reply.generation == self._generation:
                self._weights = reply.weights
