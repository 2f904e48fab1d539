"""
tests/test_tracker.py — Tests for eye patch extraction and the face feedback box.

MediaPipe is replaced by a MagicMock module so no model is loaded.
"""

from __future__ import annotations

import asyncio
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from fakes import make_eye_features
from ridgegaze.core.config import TrackerConfig
from ridgegaze.tracker.facemesh import (
    _LEFT_EYE_LOWER,
    _LEFT_EYE_UPPER,
    _RIGHT_EYE_LOWER,
    _RIGHT_EYE_UPPER,
    FaceMeshTracker,
    _bounding_box,
    _crop_patch,
    eye_features_from_landmarks,
)
from ridgegaze.tracker.validation import compute_validation_box, eyes_in_validation_box

_W, _H = 640, 480


def _landmarks() -> np.ndarray:
    points = np.full((468, 2), 320.0)
    points[list(_LEFT_EYE_UPPER)] = (300.0, 200.0)
    points[list(_LEFT_EYE_LOWER)] = (340.0, 220.0)
    points[list(_RIGHT_EYE_UPPER)] = (200.0, 205.0)
    points[list(_RIGHT_EYE_LOWER)] = (230.0, 215.0)
    return points


def _canvas() -> np.ndarray:
    canvas = np.zeros((_H, _W, 3), dtype=np.uint8)
    canvas[:, :, 1] = np.arange(_W, dtype=np.uint16)[None, :] % 256
    return canvas


# ──────────────────────────────────────────
# Geometry
# ──────────────────────────────────────────

class TestEyeGeometry:
    def test_bounding_box_uses_lid_arcs(self) -> None:
        assert _bounding_box(_landmarks(), _LEFT_EYE_UPPER, _LEFT_EYE_LOWER) == (300, 200, 40, 20)
        assert _bounding_box(_landmarks(), _RIGHT_EYE_UPPER, _RIGHT_EYE_LOWER) == (200, 205, 30, 10)

    def test_bounding_box_rounds(self) -> None:
        points = _landmarks()
        points[list(_LEFT_EYE_UPPER)] = (300.4, 199.6)
        assert _bounding_box(points, _LEFT_EYE_UPPER, _LEFT_EYE_LOWER) == (300, 200, 40, 20)

    def test_crop_copies_pixels(self) -> None:
        canvas = _canvas()
        patch = _crop_patch(canvas, (10, 20, 30, 5))
        assert patch.patch.shape == (5, 30, 3)
        assert np.array_equal(patch.patch[0, :, 1], np.arange(10, 40))
        patch.patch[:] = 0
        assert canvas[20, 10, 1] == 10

    def test_crop_rejects_empty_box(self) -> None:
        assert _crop_patch(_canvas(), (10, 10, 0, 5)) is None
        assert _crop_patch(_canvas(), (10, 10, 5, -1)) is None

    def test_crop_clips_to_image_but_keeps_rectangle(self) -> None:
        patch = _crop_patch(_canvas(), (-5, 470, 20, 20))
        assert patch.patch.shape == (10, 15, 3)
        assert (patch.imagex, patch.imagey, patch.width, patch.height) == (-5, 470, 20, 20)

    def test_features_from_landmarks(self) -> None:
        features = eye_features_from_landmarks(_canvas(), _landmarks())
        assert features.left.patch.shape == (20, 40, 3)
        assert features.right.patch.shape == (10, 30, 3)
        assert (features.left.imagex, features.left.imagey) == (300, 200)

    def test_degenerate_eye_gives_no_features(self) -> None:
        points = _landmarks()
        points[list(_RIGHT_EYE_LOWER)] = (150.0, 205.0)
        assert eye_features_from_landmarks(_canvas(), points) is None


# ──────────────────────────────────────────
# Validation box
# ──────────────────────────────────────────

class TestValidationBox:
    def test_preview_box_geometry(self) -> None:
        top, left, width, height = compute_validation_box(640, 480, 320, 240, 0.66)
        assert top == pytest.approx(40.8)
        assert left == pytest.approx(80.8)
        assert width == pytest.approx(158.4)
        assert height == pytest.approx(158.4)

    def test_portrait_video_scales_by_height(self) -> None:
        top, left, width, _ = compute_validation_box(480, 640, 240, 320, 0.5)
        assert width == pytest.approx(120.0)
        assert left == pytest.approx(60.0)
        assert top == pytest.approx(100.0)

    def test_eyes_inside(self) -> None:
        assert eyes_in_validation_box(make_eye_features(), _W, _H)

    def test_eye_outside(self) -> None:
        assert not eyes_in_validation_box(make_eye_features(left_xy=(10.0, 200.0)), _W, _H)

    # With ratio 0.5 on 640×480 the box spans x 200..440 and y 120..360
    @pytest.mark.parametrize(
        "left_xy",
        [
            (200.0, 200.0),  # touching the left edge
            (250.0, 120.0),  # touching the top edge
            (400.0, 200.0),  # right side at exactly 440
            (250.0, 340.0),  # bottom side at exactly 360
        ],
    )
    def test_edges_are_exclusive(self, left_xy) -> None:
        features = make_eye_features(left_xy=left_xy)
        assert not eyes_in_validation_box(features, _W, _H, ratio=0.5)

    def test_just_inside_edges(self) -> None:
        features = make_eye_features(left_xy=(200.5, 120.5), right_xy=(399.5, 339.5))
        assert eyes_in_validation_box(features, _W, _H, ratio=0.5)


# ──────────────────────────────────────────
# FaceMeshTracker
# ──────────────────────────────────────────

def _fake_mediapipe(landmarks):
    """MediaPipe stand-in whose FaceMesh reports ``landmarks`` (pixels), or no face for None."""
    mesh = MagicMock()
    faces = None
    if landmarks is not None:
        faces = [
            SimpleNamespace(landmark=[SimpleNamespace(x=x / _W, y=y / _H) for x, y in landmarks])
        ]
    mesh.process.return_value = SimpleNamespace(multi_face_landmarks=faces)
    fake_mp = MagicMock()
    fake_mp.solutions.face_mesh.FaceMesh.return_value = mesh
    return fake_mp, mesh


class TestFaceMeshTracker:
    def test_extract_scales_landmarks_and_crops(self) -> None:
        fake_mp, mesh = _fake_mediapipe(_landmarks())
        with patch.dict(sys.modules, {"mediapipe": fake_mp}):
            tracker = FaceMeshTracker(TrackerConfig(min_detection_confidence=0.7))
        canvas = _canvas()

        features = asyncio.run(tracker.extract(canvas, canvas, _W, _H))

        assert features is not None
        assert features.left.patch.shape == (20, 40, 3)
        assert np.allclose(tracker.get_positions(), _landmarks())
        kwargs = fake_mp.solutions.face_mesh.FaceMesh.call_args.kwargs
        assert kwargs["min_detection_confidence"] == 0.7
        assert kwargs["max_num_faces"] == 1
        assert mesh.process.call_count == 1

    def test_no_face_returns_none(self) -> None:
        fake_mp, _ = _fake_mediapipe(None)
        with patch.dict(sys.modules, {"mediapipe": fake_mp}):
            tracker = FaceMeshTracker()
        canvas = _canvas()
        assert asyncio.run(tracker.extract(canvas, canvas, _W, _H)) is None
        assert tracker.get_positions() is None

    def test_reset_recreates_model(self) -> None:
        fake_mp, mesh = _fake_mediapipe(None)
        with patch.dict(sys.modules, {"mediapipe": fake_mp}):
            tracker = FaceMeshTracker()
            tracker.reset()
        assert mesh.close.call_count == 1
        assert fake_mp.solutions.face_mesh.FaceMesh.call_count == 2

    def test_close_releases_model(self) -> None:
        fake_mp, mesh = _fake_mediapipe(None)
        with patch.dict(sys.modules, {"mediapipe": fake_mp}):
            tracker = FaceMeshTracker()
        tracker.close()
        mesh.close.assert_called_once()

    def test_draw_face_overlay(self) -> None:
        fake_mp, _ = _fake_mediapipe(None)
        with patch.dict(sys.modules, {"mediapipe": fake_mp}):
            tracker = FaceMeshTracker()
        image = np.zeros((_H, _W, 3), dtype=np.uint8)
        tracker.draw_face_overlay(image, np.array([[100.0, 50.0]]))
        assert tuple(image[50, 100]) == (32, 160, 32)
        tracker.draw_face_overlay(image, None)
