"""
ridgegaze/tracker/facemesh.py — MediaPipe FaceMesh eye patch tracker.

Runs FaceMesh on the painted canvas, bounds each eye by its upper and lower
lid arcs and crops the enclosed pixels as the eye patch. Landmark "left" and
"right" are from the subject's point of view.

mediapipe is an optional dependency (``pip install ridgegaze[facemesh]``)
and is only imported when a tracker is constructed.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Optional, Sequence

import cv2
import numpy as np

from ridgegaze.core.config import TrackerConfig
from ridgegaze.core.types import EyeFeatures, EyePatch
from ridgegaze.tracker.base import Tracker

logger = logging.getLogger(__name__)

# FaceMesh lid-arc landmark indices
_LEFT_EYE_UPPER: tuple[int, ...] = (466, 388, 387, 386, 385, 384, 398)
_LEFT_EYE_LOWER: tuple[int, ...] = (263, 249, 390, 373, 374, 380, 381, 382, 362)
_RIGHT_EYE_UPPER: tuple[int, ...] = (246, 161, 160, 159, 158, 157, 173)
_RIGHT_EYE_LOWER: tuple[int, ...] = (33, 7, 163, 144, 145, 153, 154, 155, 133)

_OVERLAY_COLOUR: tuple[int, int, int] = (32, 160, 32)


def _bounding_box(
    points: np.ndarray,
    upper: Sequence[int],
    lower: Sequence[int],
) -> tuple[int, int, int, int]:
    """
    Bound an eye by its lid arcs.

    The top-left corner comes from the upper arc and the bottom-right corner
    from the lower arc, both rounded to whole pixels.

    Args:
        points: ``N×2`` landmark array in pixel coordinates.
        upper: Indices of the upper lid arc.
        lower: Indices of the lower lid arc.

    Returns:
        ``(x, y, width, height)``; width or height may be zero or negative
        for a degenerate detection.
    """
    top = points[list(upper)]
    bottom = points[list(lower)]
    x0 = int(round(float(top[:, 0].min())))
    y0 = int(round(float(top[:, 1].min())))
    x1 = int(round(float(bottom[:, 0].max())))
    y1 = int(round(float(bottom[:, 1].max())))
    return x0, y0, x1 - x0, y1 - y0


def _crop_patch(canvas: np.ndarray, box: tuple[int, int, int, int]) -> Optional[EyePatch]:
    """Copy the pixels under ``box`` out of ``canvas``; ``None`` if empty."""
    x, y, w, h = box
    if w <= 0 or h <= 0:
        return None
    img_h, img_w = canvas.shape[:2]
    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + w, img_w), min(y + h, img_h)
    if x1 <= x0 or y1 <= y0:
        return None
    patch = canvas[y0:y1, x0:x1].copy()
    return EyePatch(patch=patch, imagex=x, imagey=y, width=w, height=h)


def eye_features_from_landmarks(canvas: np.ndarray, points: np.ndarray) -> Optional[EyeFeatures]:
    """Build :class:`EyeFeatures` from FaceMesh landmarks, or ``None`` if degenerate."""
    left = _crop_patch(canvas, _bounding_box(points, _LEFT_EYE_UPPER, _LEFT_EYE_LOWER))
    right = _crop_patch(canvas, _bounding_box(points, _RIGHT_EYE_UPPER, _RIGHT_EYE_LOWER))
    if left is None or right is None:
        return None
    return EyeFeatures(left=left, right=right)


class FaceMeshTracker(Tracker):
    """
    Eye patch extraction with MediaPipe FaceMesh.

    Inference runs in a worker thread via :func:`asyncio.to_thread` so the
    scheduler's extraction timeout can fire while it is in progress.

    Args:
        config: Detection confidence thresholds; defaults if omitted.
    """

    name = "facemesh"

    def __init__(self, config: Optional[TrackerConfig] = None) -> None:
        import mediapipe as mp  # type: ignore[import]  # optional dep

        self._cfg = config or TrackerConfig()
        self._mp = mp
        self._lock = threading.Lock()
        self._positions: Optional[np.ndarray] = None
        self._face_mesh = self._create_face_mesh()
        logger.info(
            "FaceMeshTracker initialised (detection=%.2f, tracking=%.2f)",
            self._cfg.min_detection_confidence, self._cfg.min_tracking_confidence,
        )

    def _create_face_mesh(self) -> Any:
        return self._mp.solutions.face_mesh.FaceMesh(  # type: ignore[attr-defined]
            static_image_mode=False,
            max_num_faces=1,
            refine_landmarks=False,
            min_detection_confidence=self._cfg.min_detection_confidence,
            min_tracking_confidence=self._cfg.min_tracking_confidence,
        )

    # ──────────────────────────────────────────
    # Tracker API
    # ──────────────────────────────────────────

    async def extract(
        self,
        video_frame: np.ndarray,
        canvas: np.ndarray,
        width: int,
        height: int,
    ) -> Optional[EyeFeatures]:
        return await asyncio.to_thread(self._extract_blocking, canvas, width, height)

    def reset(self) -> None:
        with self._lock:
            self._face_mesh.close()
            self._face_mesh = self._create_face_mesh()
            self._positions = None
        logger.debug("FaceMeshTracker reset")

    def get_positions(self) -> Optional[np.ndarray]:
        return self._positions

    def draw_face_overlay(self, image: np.ndarray, positions: Optional[np.ndarray]) -> None:
        if positions is None:
            return
        for x, y in positions:
            cv2.circle(image, (int(x), int(y)), 1, _OVERLAY_COLOUR, -1)

    def close(self) -> None:
        with self._lock:
            self._face_mesh.close()

    # ──────────────────────────────────────────
    # Inference (worker thread)
    # ──────────────────────────────────────────

    def _extract_blocking(self, canvas: np.ndarray, width: int, height: int) -> Optional[EyeFeatures]:
        rgb = cv2.cvtColor(canvas, cv2.COLOR_BGR2RGB)
        rgb.flags.writeable = False
        with self._lock:
            results = self._face_mesh.process(rgb)

        if not results.multi_face_landmarks:
            self._positions = None
            return None

        landmarks = results.multi_face_landmarks[0].landmark
        points = np.array([(lm.x * width, lm.y * height) for lm in landmarks], dtype=np.float64)
        self._positions = points
        return eye_features_from_landmarks(canvas, points)
