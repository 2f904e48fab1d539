"""
ridgegaze/core/scheduler.py — Per-frame gaze loop and its lifecycle state machine.

One asyncio task runs the loop. Each iteration is strictly sequential:
read and paint a frame, extract eye features, predict, report face-box
feedback, smooth, then hand the result to the gaze listener. Lifecycle
changes are validated against an explicit transition map.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Callable, Optional

import numpy as np

from ridgegaze.core.errors import FeatureExtractionFailure, MediaAccessError
from ridgegaze.core.session import GazeSession
from ridgegaze.core.types import EyeFeatures, GazePrediction, Point
from ridgegaze.input.event_recorder import EventRecorder
from ridgegaze.media.camera import CameraStream, paint_current_frame
from ridgegaze.storage.calibration_store import CalibrationStore
from ridgegaze.tracker.validation import eyes_in_validation_box

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """Lifecycle state of the gaze loop."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    ENDING = "ending"


# ──────────────────────────────────────────────────────────────
# Custom exception
# ──────────────────────────────────────────────────────────────

class InvalidTransitionError(RuntimeError):
    """
    Raised when a requested lifecycle transition is not in the transition map.

    Args:
        from_state: Current state at the time of the illegal attempt.
        to_state: Requested (invalid) target state.
    """

    def __init__(self, from_state: SchedulerState, to_state: SchedulerState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition {from_state.value} → {to_state.value}")


# ──────────────────────────────────────────────────────────────
# Valid transition map
# ──────────────────────────────────────────────────────────────

_VALID_TRANSITIONS: dict[SchedulerState, list[SchedulerState]] = {
    SchedulerState.IDLE: [SchedulerState.RUNNING],
    SchedulerState.RUNNING: [SchedulerState.PAUSED, SchedulerState.ENDING],
    SchedulerState.PAUSED: [SchedulerState.RUNNING, SchedulerState.ENDING],
    SchedulerState.ENDING: [SchedulerState.IDLE],
}


class Scheduler:
    """
    Drives one pipeline iteration per camera frame.

    Args:
        session: Shared pipeline context.
        camera: Media input, opened at :meth:`begin` and released at :meth:`end`.
        store: Calibration store loaded at :meth:`begin`; optional.
        recorder: Event recorder detached at :meth:`end`; optional.
    """

    def __init__(
        self,
        session: GazeSession,
        camera: CameraStream,
        store: Optional[CalibrationStore] = None,
        recorder: Optional[EventRecorder] = None,
    ) -> None:
        self._session = session
        self._camera = camera
        self._store = store
        self._recorder = recorder
        self._state = SchedulerState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._iteration_lock = asyncio.Lock()
        self.iterations = 0
        self.extract_timeouts = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def camera(self) -> CameraStream:
        return self._camera

    # ──────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────

    async def begin(self, on_fail: Optional[Callable[[Exception], None]] = None) -> None:
        """
        Open the camera, build the configured modules, load stored
        calibration and start the loop task.

        Modules are only built once the camera is open. If building them or
        loading calibration raises, the camera is released and the session
        closed before the error propagates.

        Args:
            on_fail: Called with the :class:`MediaAccessError` if the camera
                cannot be opened.

        Raises:
            MediaAccessError: If the camera cannot be opened; the state stays IDLE.
            InvalidTransitionError: If the loop is not IDLE.
        """
        if SchedulerState.RUNNING not in _VALID_TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state, SchedulerState.RUNNING)

        try:
            self._camera.open()
        except MediaAccessError as exc:
            logger.error("Cannot start gaze loop: %s", exc)
            if on_fail is not None:
                on_fail(exc)
            raise

        session = self._session
        try:
            if session.tracker is None:
                session.set_tracker(session.config.tracker.name)
            if not session.regressions:
                session.set_regression(session.config.regression.name)
            if session.save_across_sessions and self._store is not None:
                await self._store.load_into(session)
        except Exception:
            logger.error("Gaze loop start aborted; releasing camera and modules")
            self._camera.release()
            session.close()
            raise

        session.paused = False
        session.reset_clock()
        self._set_state(SchedulerState.RUNNING)
        self._task = asyncio.create_task(self._loop(), name="ridgegaze-loop")
        logger.info("Gaze loop started")

    def pause(self) -> None:
        """Stop scheduling iterations after the one in flight."""
        self._set_state(SchedulerState.PAUSED)
        self._session.paused = True
        logger.info("Gaze loop paused")

    async def resume(self) -> None:
        """Resume the loop; a new task is started only if the old one exited."""
        self._set_state(SchedulerState.RUNNING)
        self._session.paused = False
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="ridgegaze-loop")
        logger.info("Gaze loop resumed")

    async def end(self) -> None:
        """
        Stop the loop and release the camera, workers and mouse hook.

        No-op when the loop was never started.
        """
        if self._state is SchedulerState.IDLE:
            return
        self._set_state(SchedulerState.ENDING)
        self._session.paused = True
        if self._task is not None:
            try:
                await self._task
            except Exception as exc:  # noqa: BLE001
                logger.error("Gaze loop task failed: %s", exc, exc_info=True)
            self._task = None

        self._camera.release()
        if self._recorder is not None:
            self._recorder.detach()
        self._session.close()
        self._set_state(SchedulerState.IDLE)
        logger.info("Gaze loop ended after %d iterations", self.iterations)

    async def run_once(self) -> Optional[GazePrediction]:
        """Run a single iteration outside the loop task."""
        return await self._iterate()

    # ──────────────────────────────────────────
    # Loop
    # ──────────────────────────────────────────

    async def _loop(self) -> None:
        interval = 1.0 / self._session.config.camera.fps
        while self._state is SchedulerState.RUNNING:
            try:
                await self._iterate()
            except Exception as exc:  # noqa: BLE001
                logger.error("Unhandled error in gaze loop: %s", exc, exc_info=True)
            if self._state is not SchedulerState.RUNNING:
                break
            await asyncio.sleep(interval)
        logger.debug("Gaze loop task exited (state=%s)", self._state.value)

    async def _iterate(self) -> Optional[GazePrediction]:
        async with self._iteration_lock:
            session = self._session
            camera_cfg = session.config.camera

            features: Optional[EyeFeatures] = None
            frame = await asyncio.to_thread(self._camera.read)
            if frame is not None:
                canvas = paint_current_frame(frame, camera_cfg.width, camera_cfg.height)
                features = await self._extract(frame, canvas, camera_cfg.width, camera_cfg.height)
            session.latest_features = features

            prediction = session.predict(features)

            if session.config.pipeline.show_face_feedback_box:
                self._feedback(features, camera_cfg.width, camera_cfg.height)

            smoothed = self._smooth(prediction) if prediction is not None else None
            session.latest_prediction = smoothed

            listener = session.listener
            if listener is not None:
                try:
                    listener(smoothed, session.elapsed_ms())
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Gaze listener raised: %s", exc)

            self.iterations += 1
            return smoothed

    async def _extract(
        self,
        frame: np.ndarray,
        canvas: np.ndarray,
        width: int,
        height: int,
    ) -> Optional[EyeFeatures]:
        tracker = self._session.tracker
        if tracker is None:
            return None
        timeout_ms = self._session.config.pipeline.extract_timeout_ms
        try:
            result = tracker.extract(frame, canvas, width, height)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=timeout_ms / 1000.0)
            return result
        except asyncio.TimeoutError:
            self.extract_timeouts += 1
            logger.warning(
                "Feature extraction exceeded %.0f ms (performance regression, %d so far)",
                timeout_ms, self.extract_timeouts,
            )
            self._session.notify("extract_timeout", timeout_ms)
            return None
        except Exception as exc:  # noqa: BLE001
            failure = FeatureExtractionFailure(f"{type(exc).__name__}: {exc}")
            failure.__cause__ = exc
            self._session.report_error(failure)
            return None

    def _feedback(self, features: Optional[EyeFeatures], width: int, height: int) -> None:
        try:
            if features is None:
                inside = None
            else:
                ratio = self._session.config.tracker.face_feedback_box_ratio
                inside = eyes_in_validation_box(features, width, height, ratio)
            self._session.notify("feedback", inside)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Face feedback check failed: %s", exc)

    def _smooth(self, prediction: GazePrediction) -> GazePrediction:
        session = self._session
        point = Point(prediction.x, prediction.y)
        if session.apply_kalman:
            point = session.kalman.update(point)

        session.smoothing.push(point)
        window = session.smoothing.data
        x = sum(p.x for p in window) / len(window)
        y = sum(p.y for p in window) / len(window)

        pipeline_cfg = session.config.pipeline
        if pipeline_cfg.screen_width is not None:
            x = min(max(x, 0.0), float(pipeline_cfg.screen_width))
        if pipeline_cfg.screen_height is not None:
            y = min(max(y, 0.0), float(pipeline_cfg.screen_height))

        if session.storing_points:
            session.stored_points.push(Point(x, y))

        return GazePrediction(
            x=x, y=y, eye_features=prediction.eye_features, all=prediction.all
        )

    # ──────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────

    def _set_state(self, new_state: SchedulerState) -> None:
        """
        Transition to ``new_state`` and emit a ``state_change`` event.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        old = self._state
        if new_state not in _VALID_TRANSITIONS[old]:
            raise InvalidTransitionError(old, new_state)
        self._state = new_state
        logger.debug("State: %s → %s", old.name, new_state.name)
        self._session.notify("state_change", new_state)
