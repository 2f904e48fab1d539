"""
ridgegaze/core/kalman.py — Constant-velocity Kalman filter for raw gaze points.

Optional stage between the regression output and the smoothing window,
enabled with ``pipeline.apply_kalman_filter``. State is ``[x, y, vx, vy]``;
only the position is measured.
"""

from __future__ import annotations

import numpy as np

from ridgegaze.core.types import Point

# Expected regression error in pixels; sets the measurement noise.
_PIXEL_ERROR: float = 47.0
# Nominal time step between iterations used for the process noise.
_DELTA_T: float = 1.0 / 10.0


class KalmanFilter:
    """
    Linear Kalman filter over 2-D screen positions.

    Args:
        initial: Starting position estimate (defaults to ``(500, 500)``).
        pixel_error: Measurement standard deviation in pixels.
    """

    def __init__(self, initial: Point = Point(500.0, 500.0), pixel_error: float = _PIXEL_ERROR) -> None:
        self._F = np.array(
            [[1.0, 0.0, 1.0, 0.0],
             [0.0, 1.0, 0.0, 1.0],
             [0.0, 0.0, 1.0, 0.0],
             [0.0, 0.0, 0.0, 1.0]]
        )
        self._Q = np.array(
            [[0.25, 0.0, 0.5, 0.0],
             [0.0, 0.25, 0.0, 0.5],
             [0.5, 0.0, 1.0, 0.0],
             [0.0, 0.5, 0.0, 1.0]]
        ) * _DELTA_T
        self._H = np.array([[1.0, 0.0, 0.0, 0.0], [0.0, 1.0, 0.0, 0.0]])
        self._R = np.eye(2) * pixel_error ** 2
        self._initial = initial
        self.reset()

    def reset(self) -> None:
        self._x = np.array([[self._initial.x], [self._initial.y], [0.0], [0.0]])
        self._P = np.eye(4) * 0.0001

    def update(self, z: Point) -> Point:
        """
        Run one predict + correct step with measurement ``z``.

        Args:
            z: Raw position from the regression model.

        Returns:
            The filtered position.
        """
        # Predict
        x_pred = self._F @ self._x
        p_pred = self._F @ self._P @ self._F.T + self._Q

        # Correct
        measured = np.array([[z.x], [z.y]])
        innovation = measured - self._H @ x_pred
        s = self._H @ p_pred @ self._H.T + self._R
        gain = p_pred @ self._H.T @ np.linalg.inv(s)
        self._x = x_pred + gain @ innovation
        self._P = (np.eye(4) - gain @ self._H) @ p_pred
        return Point(float(self._x[0, 0]), float(self._x[1, 0]))
