"""
ridgegaze/media/camera.py — Webcam or video file input via OpenCV.

A :class:`CameraStream` is opened by the scheduler at ``begin()`` and
released at ``end()``. Frames are read synchronously; a static video loops
back to its first frame when it runs out.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from ridgegaze.core.config import CameraConfig
from ridgegaze.core.errors import MediaAccessError

logger = logging.getLogger(__name__)

Source = Union[int, str]


def detect_compatibility() -> bool:
    """Return True if this OpenCV build can capture video."""
    return hasattr(cv2, "VideoCapture")


def paint_current_frame(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Paint ``frame`` into a ``width×height`` buffer.

    Returns:
        A new BGR array of shape ``(height, width, 3)``.
    """
    if frame.shape[1] == width and frame.shape[0] == height:
        return frame.copy()
    return cv2.resize(frame, (width, height), interpolation=cv2.INTER_LINEAR)


class CameraStream:
    """
    OpenCV capture wrapper for a device index or a video file path.

    Args:
        source: Device index, or a path to a video file replayed in a loop.
        width: Requested capture width.
        height: Requested capture height.
        fps: Requested capture frame rate.
    """

    def __init__(self, source: Source = 0, width: int = 640, height: int = 480, fps: int = 30) -> None:
        self._source = source
        self._width = width
        self._height = height
        self._fps = fps
        self._cap: Optional[cv2.VideoCapture] = None

    @classmethod
    def from_config(cls, config: CameraConfig) -> "CameraStream":
        source: Source = config.static_video if config.static_video else config.index
        return cls(source, config.width, config.height, config.fps)

    # ──────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────

    def open(self) -> None:
        """
        Open the device or file and apply the requested constraints.

        Raises:
            MediaAccessError: If OpenCV cannot capture or the source fails to open.
        """
        if not detect_compatibility():
            raise MediaAccessError("OpenCV build has no video capture support")
        if self.is_static and not Path(str(self._source)).exists():
            raise MediaAccessError(f"Static video not found: {self._source}")

        try:
            cap = cv2.VideoCapture(self._source)
        except cv2.error as exc:
            raise MediaAccessError(f"Cannot open video source {self._source!r}: {exc}") from exc
        if not cap.isOpened():
            cap.release()
            raise MediaAccessError(
                f"Cannot open video source {self._source!r}. "
                "Check that a webcam is connected or pass --video."
            )
        self._cap = cap
        self._apply()
        logger.info(
            "CameraStream opened (source=%r, %dx%d @ %dfps)",
            self._source, self._width, self._height, self._fps,
        )

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("CameraStream released (source=%r)", self._source)

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    @property
    def is_static(self) -> bool:
        return isinstance(self._source, str)

    @property
    def source(self) -> Source:
        return self._source

    # ──────────────────────────────────────────
    # Frames
    # ──────────────────────────────────────────

    def read(self) -> Optional[np.ndarray]:
        """Return the next BGR frame, or ``None`` if none is available."""
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok and self.is_static:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ok, frame = self._cap.read()
        if not ok:
            logger.warning("Camera read failed (source=%r)", self._source)
            return None
        return frame

    def frame_size(self) -> tuple[int, int]:
        """Actual ``(width, height)`` reported by the device, else the requested size."""
        if self._cap is not None:
            w = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            h = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            if w > 0 and h > 0:
                return w, h
        return self._width, self._height

    # ──────────────────────────────────────────
    # Constraints
    # ──────────────────────────────────────────

    def apply_constraints(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
        fps: Optional[int] = None,
    ) -> None:
        """Update the requested capture size/rate; applied immediately if open."""
        self._width = width or self._width
        self._height = height or self._height
        self._fps = fps or self._fps
        if self._cap is not None:
            self._apply()

    def set_source(self, source: Source) -> None:
        """Switch to a new source; takes effect on the next :meth:`open`."""
        self._source = source

    def _apply(self) -> None:
        if self._cap is None or self.is_static:
            return
        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
        self._cap.set(cv2.CAP_PROP_FPS, self._fps)
