"""
ridgegaze/core/pipeline.py — Public control surface of the gaze pipeline.

:class:`GazePipeline` wires configuration, camera, session, scheduler,
calibration store and mouse event recorder together and exposes the
operations an embedding application needs: lifecycle, module selection,
listener registration, calibration and data management.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Optional

from ridgegaze.core.config import RidgeGazeConfig, load_config
from ridgegaze.core.events import EventCallback
from ridgegaze.core.scheduler import Scheduler, SchedulerState
from ridgegaze.core.session import GazeListener, GazeSession, RegressionFactory, TrackerFactory
from ridgegaze.core.types import EventType, GazePrediction, get_event_types
from ridgegaze.input.event_recorder import EventRecorder
from ridgegaze.media.camera import CameraStream
from ridgegaze.regression.base import RegressionModel
from ridgegaze.regression.features import Featurizer
from ridgegaze.storage.calibration_store import CalibrationStore, KeyValueStore
from ridgegaze.tracker.base import Tracker
from ridgegaze.tracker.validation import compute_validation_box

logger = logging.getLogger(__name__)


class GazePipeline:
    """
    Real-time webcam gaze estimation pipeline.

    Args:
        config: Validated :class:`RidgeGazeConfig` instance.
        on_event: Optional callback invoked on each :class:`PipelineEvent`.
        camera: Media input; built from ``config.camera`` if omitted.
        store: Backing key-value store for calibration data; JSON files
            under ``config.storage.path`` if omitted.
        featurizer: Feature function for the built-in regressors.
    """

    def __init__(
        self,
        config: RidgeGazeConfig,
        on_event: Optional[EventCallback] = None,
        camera: Optional[CameraStream] = None,
        store: Optional[KeyValueStore] = None,
        featurizer: Optional[Featurizer] = None,
    ) -> None:
        """Build all components without opening the camera."""
        self._session = GazeSession(config, on_event=on_event, featurizer=featurizer)
        self._camera = camera or CameraStream.from_config(config.camera)
        if store is None:
            self._store = CalibrationStore.from_config(config.storage)
        else:
            self._store = CalibrationStore(store, config.storage)
        self._recorder = EventRecorder(self._session, self._store)
        self._scheduler = Scheduler(self._session, self._camera, self._store, self._recorder)
        logger.info(
            "GazePipeline initialised (tracker=%s, regression=%s)",
            config.tracker.name, config.regression.name,
        )

    @classmethod
    def from_config_file(
        cls,
        config_path: str | None = None,
        on_event: Optional[EventCallback] = None,
    ) -> "GazePipeline":
        """
        Convenience factory: load config from file and build the pipeline.

        Args:
            config_path: Optional path to ridgegaze.yaml; auto-discovers if None.
            on_event: Event callback.

        Returns:
            A ready-to-begin :class:`GazePipeline`.
        """
        config = load_config(config_path)
        return cls(config=config, on_event=on_event)

    # ──────────────────────────────────────────
    # Accessors
    # ──────────────────────────────────────────

    @property
    def config(self) -> RidgeGazeConfig:
        return self._session.config

    @property
    def session(self) -> GazeSession:
        return self._session

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def recorder(self) -> EventRecorder:
        return self._recorder

    @property
    def state(self) -> SchedulerState:
        return self._scheduler.state

    # ──────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────

    async def begin(self, on_fail: Optional[Callable[[Exception], None]] = None) -> "GazePipeline":
        """
        Start the gaze loop; attaches the mouse hook if configured.

        Raises:
            MediaAccessError: If the camera cannot be opened.
        """
        await self._scheduler.begin(on_fail)
        if self.config.pipeline.record_mouse_events and not self._recorder.is_attached:
            try:
                self.add_mouse_event_listeners()
            except ImportError as exc:
                logger.warning("Mouse recording unavailable (%s); install ridgegaze[mouse]", exc)
        return self

    def pause(self) -> "GazePipeline":
        self._scheduler.pause()
        return self

    async def resume(self) -> "GazePipeline":
        await self._scheduler.resume()
        return self

    async def end(self) -> "GazePipeline":
        await self._scheduler.end()
        return self

    def is_ready(self) -> bool:
        """True once the loop is started and the camera delivers frames."""
        return (
            self._scheduler.state in (SchedulerState.RUNNING, SchedulerState.PAUSED)
            and self._camera.is_open
        )

    # ──────────────────────────────────────────
    # Modules
    # ──────────────────────────────────────────

    def set_tracker(self, name: str) -> "GazePipeline":
        self._session.set_tracker(name)
        return self

    def set_regression(self, name: str) -> "GazePipeline":
        self._session.set_regression(name)
        return self

    def add_regression(self, name: str) -> "GazePipeline":
        self._session.add_regression(name)
        return self

    def add_tracker_module(self, name: str, factory: TrackerFactory) -> "GazePipeline":
        self._session.register_tracker(name, factory)
        return self

    def add_regression_module(self, name: str, factory: RegressionFactory) -> "GazePipeline":
        self._session.register_regression(name, factory)
        return self

    def get_tracker(self) -> Optional[Tracker]:
        return self._session.tracker

    def get_regression(self) -> list[RegressionModel]:
        return list(self._session.regressions)

    # ──────────────────────────────────────────
    # Gaze output
    # ──────────────────────────────────────────

    def set_gaze_listener(self, listener: GazeListener) -> "GazePipeline":
        self._session.listener = listener
        return self

    def clear_gaze_listener(self) -> "GazePipeline":
        self._session.listener = None
        return self

    def get_current_prediction(self, index: Optional[int] = None) -> Optional[GazePrediction]:
        """Predict from the most recent eye features without smoothing."""
        return self._session.predict(self._session.latest_features, index)

    def get_stored_points(self) -> tuple[list[float], list[float]]:
        return self._session.get_stored_points()

    @staticmethod
    def get_event_types() -> list[str]:
        return get_event_types()

    # ──────────────────────────────────────────
    # Training data
    # ──────────────────────────────────────────

    def record_screen_position(
        self,
        x: float,
        y: float,
        event_type: EventType | str = EventType.CLICK,
    ) -> "GazePipeline":
        self._session.record_screen_position(x, y, event_type)
        return self

    async def clear_data(self) -> "GazePipeline":
        """Wipe the calibration store and reset every active regressor."""
        await self._store.clear()
        self._session.clear_data()
        logger.info("Calibration data cleared")
        return self

    def save_data_across_sessions(self, enabled: bool) -> "GazePipeline":
        self._session.save_across_sessions = enabled
        return self

    def apply_kalman_filter(self, enabled: bool) -> "GazePipeline":
        self._session.apply_kalman = enabled
        if enabled:
            self._session.kalman.reset()
        return self

    def add_mouse_event_listeners(
        self, loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> "GazePipeline":
        """
        Attach the global mouse hook to ``loop`` (the running loop by default).

        Raises:
            ImportError: If pynput is not installed.
        """
        self._recorder.attach(loop or asyncio.get_running_loop())
        return self

    def remove_mouse_event_listeners(self) -> "GazePipeline":
        self._recorder.detach()
        return self

    # ──────────────────────────────────────────
    # Media
    # ──────────────────────────────────────────

    async def set_camera_constraints(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
        fps: Optional[int] = None,
    ) -> "GazePipeline":
        """
        Change capture size and rate, pausing the loop while they apply.

        The tracker is reset because landmark tracking state refers to the
        old frame geometry.
        """
        was_running = self._scheduler.state is SchedulerState.RUNNING
        if was_running:
            self._scheduler.pause()

        camera_cfg = self.config.camera
        camera_cfg = replace(
            camera_cfg,
            width=width or camera_cfg.width,
            height=height or camera_cfg.height,
            fps=fps or camera_cfg.fps,
        )
        self._session.config = self.config.with_overrides(camera=camera_cfg)
        self._camera.apply_constraints(camera_cfg.width, camera_cfg.height, camera_cfg.fps)
        if self._session.tracker is not None:
            self._session.tracker.reset()
        logger.info(
            "Camera constraints set to %dx%d @ %dfps",
            camera_cfg.width, camera_cfg.height, camera_cfg.fps,
        )

        if was_running:
            await self._scheduler.resume()
        return self

    def set_static_video(self, path: str) -> "GazePipeline":
        """Replay ``path`` instead of the webcam from the next :meth:`begin`."""
        if self._camera.is_open:
            logger.warning("Static video %s takes effect after end() and begin()", path)
        self._camera.set_source(path)
        self._session.config = self.config.with_overrides(
            camera=replace(self.config.camera, static_video=path)
        )
        return self

    def get_video_preview_to_camera_resolution_ratio(
        self, preview_width: float, preview_height: float
    ) -> tuple[float, float]:
        """Return ``(preview_w / video_w, preview_h / video_h)``."""
        video_width, video_height = self._camera.frame_size()
        return preview_width / video_width, preview_height / video_height

    def get_face_feedback_box(
        self, preview_width: float, preview_height: float
    ) -> tuple[float, float, float, float]:
        """
        Place the face feedback box on a preview of the given size.

        Returns:
            ``(top, left, width, height)`` in preview pixels.
        """
        video_width, video_height = self._camera.frame_size()
        return compute_validation_box(
            video_width,
            video_height,
            preview_width,
            preview_height,
            self.config.tracker.face_feedback_box_ratio,
        )
