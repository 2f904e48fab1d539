"""
input — Mouse events as training labels.
"""

from ridgegaze.input.event_recorder import EventRecorder

__all__ = ["EventRecorder"]
