"""
ridgegaze — Real-time webcam gaze estimation.

Webcam eye patches → online ridge regression → smoothed on-screen gaze point,
continuously recalibrated from mouse clicks and movement.
"""

__version__ = "0.4.0"
__author__ = "ridgegaze contributors"
