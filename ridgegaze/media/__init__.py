"""
media — Camera and static video input over OpenCV.
"""

from ridgegaze.media.camera import CameraStream, detect_compatibility, paint_current_frame

__all__ = ["CameraStream", "detect_compatibility", "paint_current_frame"]
