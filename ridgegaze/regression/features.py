"""
ridgegaze/regression/features.py — Eye patch → feature vector conversion.

Each eye patch is converted to grayscale, shrunk to a tiny fixed grid,
histogram-equalised and flattened; both eyes are concatenated. With the
default 10×6 grid this yields a 120-element vector.
"""

from __future__ import annotations

from functools import partial
from typing import Callable

import cv2
import numpy as np

from ridgegaze.core.types import EyeFeatures, EyePatch

Featurizer = Callable[[EyeFeatures], np.ndarray]


def _patch_vector(eye: EyePatch, width: int, height: int) -> np.ndarray:
    patch = np.asarray(eye.patch)
    if patch.ndim == 3:
        gray = cv2.cvtColor(patch.astype(np.uint8), cv2.COLOR_BGR2GRAY)
    else:
        gray = patch.astype(np.uint8)
    small = cv2.resize(gray, (width, height), interpolation=cv2.INTER_AREA)
    return cv2.equalizeHist(small).ravel()


def eye_feature_vector(features: EyeFeatures, width: int = 10, height: int = 6) -> np.ndarray:
    """
    Build the regression input vector for one pair of eyes.

    Args:
        features: Eye patches from the tracker.
        width: Grid width each patch is resized to.
        height: Grid height each patch is resized to.

    Returns:
        1-D ``float64`` array of length ``2 * width * height``.
    """
    left = _patch_vector(features.left, width, height)
    right = _patch_vector(features.right, width, height)
    return np.concatenate([left, right]).astype(np.float64)


def make_featurizer(width: int, height: int) -> Featurizer:
    """Return :func:`eye_feature_vector` bound to a resize grid."""
    return partial(eye_feature_vector, width=width, height=height)
