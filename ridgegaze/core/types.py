"""
ridgegaze/core/types.py — Value types that flow through the gaze pipeline.

Eye features are produced per frame by a tracker, paired with a screen
position to form training :class:`DataPoint` objects, and turned into
:class:`GazePrediction` objects by the regression ensemble.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional

import numpy as np


class EventType(str, Enum):
    """Source of a training example; clicks are the higher-confidence label."""

    CLICK = "click"
    MOVE = "move"


def get_event_types() -> list[str]:
    """Return the event type names regression models must handle, in order."""
    return [e.value for e in EventType]


class Point(NamedTuple):
    """A screen-space coordinate in pixels."""

    x: float
    y: float


@dataclass(frozen=True)
class EyePatch:
    """
    Pixel patch and bounding rectangle of one eye in video-image coordinates.

    Attributes:
        patch: Image crop of the eye; ``H×W×3`` BGR or ``H×W`` grayscale.
        imagex: Left edge of the rectangle in the video image.
        imagey: Top edge of the rectangle in the video image.
        width: Rectangle width in pixels.
        height: Rectangle height in pixels.
    """

    patch: np.ndarray
    imagex: float
    imagey: float
    width: float
    height: float


@dataclass(frozen=True)
class EyeFeatures:
    """Both eyes extracted from a single frame."""

    left: EyePatch
    right: EyePatch


@dataclass(frozen=True)
class DataPoint:
    """
    One training example for the regression models.

    Attributes:
        eye_features: Features captured when the event fired.
        screen_position: Cursor position the user is assumed to look at.
        event_type: Whether a click or a mouse move produced the example.
        timestamp: Monotonic capture time in seconds.
    """

    eye_features: EyeFeatures
    screen_position: Point
    event_type: EventType
    timestamp: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class GazePrediction:
    """
    Gaze estimate for one loop iteration.

    Attributes:
        x: Horizontal screen coordinate.
        y: Vertical screen coordinate.
        eye_features: Features the estimate was computed from.
        all: Per-regressor raw points when more than one regressor is active.
    """

    x: float
    y: float
    eye_features: Optional[EyeFeatures] = None
    all: Optional[list[Optional[Point]]] = None
