"""
ridgegaze/tracker/validation.py — Face feedback box geometry.

The feedback box is a centred square whose side is the smaller video
dimension times ``face_feedback_box_ratio``. Eyes count as "in the box" only
when both eye rectangles lie strictly inside it.
"""

from __future__ import annotations

from ridgegaze.core.types import EyeFeatures


def compute_validation_box(
    video_width: float,
    video_height: float,
    preview_width: float,
    preview_height: float,
    ratio: float = 0.66,
) -> tuple[float, float, float, float]:
    """
    Compute the feedback box in preview coordinates.

    Args:
        video_width: Camera frame width.
        video_height: Camera frame height.
        preview_width: Displayed preview width.
        preview_height: Displayed preview height.
        ratio: Box side as a fraction of the smaller video dimension.

    Returns:
        ``(top, left, width, height)`` in preview pixels.
    """
    smaller = min(video_width, video_height)
    larger = max(video_width, video_height)
    scalar = preview_width / video_width if video_width == larger else preview_height / video_height
    box = smaller * ratio * scalar
    return (preview_height - box) / 2, (preview_width - box) / 2, box, box


def eyes_in_validation_box(
    features: EyeFeatures,
    video_width: float,
    video_height: float,
    ratio: float = 0.66,
) -> bool:
    """Return True if both eye rectangles are strictly inside the box."""
    box = min(video_width, video_height) * ratio
    top = (video_height - box) / 2
    left = (video_width - box) / 2
    right = left + box
    bottom = top + box
    for eye in (features.left, features.right):
        if not (eye.imagex > left and eye.imagex + eye.width < right):
            return False
        if not (eye.imagey > top and eye.imagey + eye.height < bottom):
            return False
    return True
