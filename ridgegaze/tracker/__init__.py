"""
tracker — Eye feature extraction from video frames.

:class:`Tracker` is the pluggable interface; :class:`FaceMeshTracker`
(MediaPipe FaceMesh) is registered as ``'facemesh'`` by default.
"""

from ridgegaze.tracker.base import Tracker
from ridgegaze.tracker.facemesh import FaceMeshTracker

__all__ = ["FaceMeshTracker", "Tracker"]
