"""
ridgegaze/core/session.py — Per-pipeline context shared by every component.

A :class:`GazeSession` owns everything the loop, the event recorder and the
calibration store need: the tracker and regression registries, the active
tracker, the active regression ensemble, the paused flag, the gaze listener,
the latest eye features and the smoothing / stored-point windows.

The ensemble is replaced by a single assignment so an in-flight iteration
always sees either the old list or the new one.
"""

from __future__ import annotations

import logging
import time
from functools import partial
from typing import Callable, Optional

from ridgegaze.core.config import RidgeGazeConfig
from ridgegaze.core.data_window import DataWindow
from ridgegaze.core.errors import NoRegressionConfigured, UnknownModuleError
from ridgegaze.core.events import EventCallback, PipelineEvent, emit
from ridgegaze.core.kalman import KalmanFilter
from ridgegaze.core.types import EventType, EyeFeatures, GazePrediction, Point
from ridgegaze.regression import (
    RegressionModel,
    RidgeRegression,
    ThreadedRidgeRegression,
    WeightedRidgeRegression,
)
from ridgegaze.regression.features import Featurizer
from ridgegaze.tracker.base import Tracker
from ridgegaze.tracker.facemesh import FaceMeshTracker

logger = logging.getLogger(__name__)

GazeListener = Callable[[Optional[GazePrediction], float], None]
TrackerFactory = Callable[[], Tracker]
RegressionFactory = Callable[[], RegressionModel]


def _tracker_factories(config: RidgeGazeConfig) -> dict[str, TrackerFactory]:
    return {"facemesh": partial(FaceMeshTracker, config.tracker)}


def _regression_factories(
    config: RidgeGazeConfig,
    featurizer: Optional[Featurizer],
) -> dict[str, RegressionFactory]:
    return {
        cls.name: partial(cls, config.regression, featurizer)
        for cls in (RidgeRegression, WeightedRidgeRegression, ThreadedRidgeRegression)
    }


class GazeSession:
    """
    Mutable state of one gaze pipeline.

    Args:
        config: Validated configuration.
        on_event: Optional observer for :class:`PipelineEvent` objects.
        featurizer: Feature function handed to the built-in regressors;
            their default grayscale eye-patch grid if omitted.
    """

    def __init__(
        self,
        config: RidgeGazeConfig,
        on_event: Optional[EventCallback] = None,
        featurizer: Optional[Featurizer] = None,
    ) -> None:
        self.config = config
        self.on_event = on_event
        self.tracker_registry: dict[str, TrackerFactory] = _tracker_factories(config)
        self.regression_registry: dict[str, RegressionFactory] = _regression_factories(
            config, featurizer
        )

        self.tracker: Optional[Tracker] = None
        self.tracker_name: Optional[str] = None
        self.regressions: list[RegressionModel] = []
        self.listener: Optional[GazeListener] = None

        self.latest_features: Optional[EyeFeatures] = None
        self.latest_prediction: Optional[GazePrediction] = None
        self.paused = False
        self.settings: dict = {}
        self.clock_start = time.monotonic()
        self._unfitted_reported = False

        pipeline_cfg = config.pipeline
        self.smoothing: DataWindow[Point] = DataWindow(pipeline_cfg.smoothing_window)
        self.stored_points: DataWindow[Point] = DataWindow(pipeline_cfg.stored_points)
        self.apply_kalman = pipeline_cfg.apply_kalman_filter
        self.kalman = KalmanFilter()
        self.storing_points = pipeline_cfg.storing_points
        self.save_across_sessions = config.storage.save_data_across_sessions

    # ──────────────────────────────────────────
    # Registries
    # ──────────────────────────────────────────

    def register_tracker(self, name: str, factory: TrackerFactory) -> None:
        """Register (or replace) a tracker constructor under ``name``."""
        self.tracker_registry[name] = factory

    def register_regression(self, name: str, factory: RegressionFactory) -> None:
        """Register (or replace) a regression constructor under ``name``."""
        self.regression_registry[name] = factory

    def set_tracker(self, name: str) -> Tracker:
        """
        Activate the tracker registered under ``name``.

        Raises:
            UnknownModuleError: If ``name`` is not registered.
        """
        factory = self.tracker_registry.get(name)
        if factory is None:
            raise UnknownModuleError("tracker", name, sorted(self.tracker_registry))
        tracker = factory()
        old = self.tracker
        self.tracker, self.tracker_name = tracker, name
        if old is not None:
            old.close()
        logger.info("Tracker set to %r", name)
        return tracker

    def set_regression(self, name: str) -> RegressionModel:
        """
        Replace the whole ensemble with the regressor registered under ``name``.

        The new model is seeded with the outgoing primary model's data, then
        swapped in with one assignment; outgoing models are closed.

        Raises:
            UnknownModuleError: If ``name`` is not registered.
        """
        model = self._build_regression(name)
        old = self.regressions
        self.regressions = [model]
        for previous in old:
            previous.close()
        logger.info("Regression set to %r (%d seeded samples)", name, len(model.get_data()))
        return model

    def add_regression(self, name: str) -> RegressionModel:
        """
        Append the regressor registered under ``name`` to the ensemble.

        Raises:
            UnknownModuleError: If ``name`` is not registered.
        """
        model = self._build_regression(name)
        self.regressions = [*self.regressions, model]
        logger.info("Regression %r added (ensemble size %d)", name, len(self.regressions))
        return model

    def _build_regression(self, name: str) -> RegressionModel:
        factory = self.regression_registry.get(name)
        if factory is None:
            raise UnknownModuleError("regression", name, sorted(self.regression_registry))
        model = factory()
        if self.regressions:
            seed = self.regressions[0].get_data()
            if seed:
                model.set_data(seed)
        return model

    # ──────────────────────────────────────────
    # Prediction and training
    # ──────────────────────────────────────────

    def predict(
        self,
        features: Optional[EyeFeatures],
        index: Optional[int] = None,
    ) -> Optional[GazePrediction]:
        """
        Predict a raw gaze point from ``features`` with the active ensemble.

        Signals :class:`NoRegressionConfigured` when the ensemble is empty
        or the regressor used has not been fitted yet.

        Args:
            features: Eye features for the current frame, or ``None``.
            index: Use only the regressor at this position; by default the
                first regressor's point is returned and every regressor's
                point is listed in ``all``.

        Returns:
            A :class:`GazePrediction`, or ``None`` when there are no
            features or no fitted regressor.
        """
        if features is None:
            return None
        regressions = self.regressions
        if not regressions:
            self.report_error(NoRegressionConfigured("No regression module is active"))
            return None

        if index is not None:
            regression = regressions[index]
            point = regression.predict(features)
            if point is None:
                self._report_unfitted(regression)
                return None
            self._unfitted_reported = False
            return GazePrediction(x=point.x, y=point.y, eye_features=features)

        points = [regression.predict(features) for regression in regressions]
        primary = points[0]
        if primary is None:
            self._report_unfitted(regressions[0])
            return None
        self._unfitted_reported = False
        return GazePrediction(
            x=primary.x,
            y=primary.y,
            eye_features=features,
            all=points if len(points) > 1 else None,
        )

    def record_screen_position(
        self,
        x: float,
        y: float,
        event_type: EventType | str = EventType.CLICK,
    ) -> bool:
        """
        Add a training example at screen ``(x, y)`` to every active regressor.

        Dropped while paused or when no eye features are available.

        Returns:
            True if the example was recorded.
        """
        if self.paused:
            return False
        features = self.latest_features
        if features is None:
            return False
        event_type = EventType(event_type)
        for regression in self.regressions:
            try:
                regression.add_data(features, (x, y), event_type)
            except Exception as exc:  # noqa: BLE001
                logger.error("Regression %r failed to add data: %s", regression.name, exc)
                self.notify("error", exc)
        return True

    def clear_data(self) -> None:
        """Reset every regressor and the point windows."""
        for regression in self.regressions:
            regression.init()
        self.smoothing.clear()
        self.stored_points.clear()
        self.kalman.reset()

    # ──────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────

    def reset_clock(self) -> None:
        self.clock_start = time.monotonic()

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.clock_start) * 1000.0

    def get_stored_points(self) -> tuple[list[float], list[float]]:
        """Return the stored gaze points as parallel ``(xs, ys)`` lists."""
        points = self.stored_points.data
        return [p.x for p in points], [p.y for p in points]

    def notify(self, kind: str, payload: object = None) -> None:
        emit(self.on_event, PipelineEvent(kind, payload=payload))

    def _report_unfitted(self, regression: RegressionModel) -> None:
        exc = NoRegressionConfigured(f"Regression {regression.name!r} has not been fitted yet")
        # Logged once per unfitted streak; every frame still gets the event
        if self._unfitted_reported:
            logger.debug("%s", exc)
        else:
            logger.error("%s: %s", type(exc).__name__, exc)
            self._unfitted_reported = True
        self.notify("error", exc)

    def report_error(self, exc: Exception) -> None:
        """Log a degraded-mode failure and forward it as an ``error`` event."""
        logger.error("%s: %s", type(exc).__name__, exc)
        self.notify("error", exc)

    def close(self) -> None:
        """Close and drop every regressor and the tracker."""
        regressions, self.regressions = self.regressions, []
        for regression in regressions:
            regression.close()
        if self.tracker is not None:
            self.tracker.close()
            self.tracker = None
