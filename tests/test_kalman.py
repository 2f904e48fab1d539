"""
tests/test_kalman.py — Unit tests for the constant-velocity Kalman filter.
"""

from __future__ import annotations

import unittest

from ridgegaze.core.kalman import KalmanFilter
from ridgegaze.core.types import Point


class TestKalmanFilter(unittest.TestCase):
    """Behavioural checks; exact gains are not asserted."""

    def test_converges_on_constant_measurement(self) -> None:
        """Repeated identical measurements pull the estimate onto them."""
        kf = KalmanFilter()
        point = Point(0.0, 0.0)
        for _ in range(500):
            point = kf.update(Point(800.0, 300.0))
        self.assertAlmostEqual(point.x, 800.0, delta=1.0)
        self.assertAlmostEqual(point.y, 300.0, delta=1.0)

    def test_first_update_is_damped(self) -> None:
        """A single far measurement moves the estimate only part of the way."""
        kf = KalmanFilter(initial=Point(500.0, 500.0))
        point = kf.update(Point(900.0, 100.0))
        self.assertGreater(point.x, 500.0)
        self.assertLess(point.x, 900.0)
        self.assertLess(point.y, 500.0)
        self.assertGreater(point.y, 100.0)

    def test_reset_restores_initial_state(self) -> None:
        """reset() forgets every earlier measurement."""
        fresh = KalmanFilter()
        used = KalmanFilter()
        for _ in range(10):
            used.update(Point(10.0, 10.0))
        used.reset()
        self.assertEqual(used.update(Point(700.0, 200.0)), fresh.update(Point(700.0, 200.0)))

    def test_returns_point(self) -> None:
        """Output is a plain Point of floats."""
        point = KalmanFilter().update(Point(1, 2))
        self.assertIsInstance(point, Point)
        self.assertIsInstance(point.x, float)
