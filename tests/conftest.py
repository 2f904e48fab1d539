"""
tests/conftest.py — Shared pytest fixtures.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ridgegaze.core.config import RidgeGazeConfig, config_from_dict


@pytest.fixture
def config(tmp_path: Path) -> RidgeGazeConfig:
    """Defaults with storage under tmp_path, a fast frame rate and no mouse hook."""
    return config_from_dict(
        {
            "camera": {"fps": 100},
            "pipeline": {"record_mouse_events": False},
            "storage": {"path": str(tmp_path / "store")},
        }
    )
