"""
ridgegaze/tracker/base.py — Interface every eye feature tracker implements.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Optional, Union

import numpy as np

from ridgegaze.core.types import EyeFeatures

ExtractResult = Union[Optional[EyeFeatures], Awaitable[Optional[EyeFeatures]]]


class Tracker(ABC):
    """
    Extracts eye patches from a painted video frame.

    :meth:`extract` may be a plain method or a coroutine function; the
    scheduler awaits the result when it is awaitable, and only awaitable
    results are covered by the extraction timeout.
    """

    #: Registry name; overridden by subclasses.
    name: str = "tracker"

    @abstractmethod
    def extract(
        self,
        video_frame: np.ndarray,
        canvas: np.ndarray,
        width: int,
        height: int,
    ) -> ExtractResult:
        """
        Return eye features for the frame, or ``None`` when no face is found.

        Args:
            video_frame: Raw camera frame (BGR).
            canvas: The frame painted at the pipeline's buffer size.
            width: Canvas width in pixels.
            height: Canvas height in pixels.
        """

    def reset(self) -> None:
        """Drop any tracking state (called after camera constraints change)."""

    def get_positions(self) -> Optional[np.ndarray]:
        """Return the last detected landmarks as an ``N×2`` pixel array."""
        return None

    def draw_face_overlay(self, image: np.ndarray, positions: Optional[np.ndarray]) -> None:
        """Draw ``positions`` onto ``image`` in place."""

    def close(self) -> None:
        """Release model resources."""
