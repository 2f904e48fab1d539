"""
ridgegaze/core/config.py — Typed configuration loader for ridgegaze.

Loads config/ridgegaze.yaml and validates all values into typed dataclasses.
All downstream modules import from this module; never read YAML directly.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

_DECAY_RULES: frozenset[str] = frozenset({"inverse_sqrt", "exponential", "none"})

# ──────────────────────────────────────────────
# Dataclass hierarchy — mirrors ridgegaze.yaml
# ──────────────────────────────────────────────


@dataclass(frozen=True)
class CameraConfig:
    """
    Media input constraints.

    ``static_video`` replaces the live device with a video file when set.
    """

    index: int = 0
    width: int = 640
    height: int = 480
    fps: int = 30
    static_video: Optional[str] = None


@dataclass(frozen=True)
class TrackerConfig:
    """Eye feature extraction settings."""

    name: str = "facemesh"
    face_feedback_box_ratio: float = 0.66
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5


@dataclass(frozen=True)
class WeightingConfig:
    """Per-sample weight rule for the weighted ridge regression."""

    decay: str = "inverse_sqrt"
    half_life: float = 50.0
    click_weight: float = 2.0
    move_weight: float = 1.0


@dataclass(frozen=True)
class RegressionConfig:
    """Ridge regression hyper-parameters and training-set capacity."""

    name: str = "ridge"
    ridge_lambda: float = 1e-5
    data_window: int = 700
    trail_window: int = 20
    resize_width: int = 10
    resize_height: int = 6
    weighting: WeightingConfig = field(default_factory=WeightingConfig)


@dataclass(frozen=True)
class PipelineConfig:
    """Main loop, smoothing and event recording settings."""

    smoothing_window: int = 4
    stored_points: int = 50
    move_tick_ms: float = 50.0
    extract_timeout_ms: float = 1000.0
    apply_kalman_filter: bool = False
    storing_points: bool = False
    show_face_feedback_box: bool = True
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    record_mouse_events: bool = True


@dataclass(frozen=True)
class StorageConfig:
    """Calibration persistence settings."""

    save_data_across_sessions: bool = True
    path: str = "~/.ridgegaze"
    settings_key: str = "ridgegazeGlobalSettings"
    data_key: str = "ridgegazeGlobalData"

    @property
    def resolved_path(self) -> Path:
        """Return the store directory as an absolute Path, expanding ~ if needed."""
        return Path(os.path.expanduser(self.path))


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    log_file: Optional[str] = None
    max_bytes: int = 10_485_760
    backup_count: int = 3


@dataclass(frozen=True)
class RidgeGazeConfig:
    """Root configuration object — single source of truth for all settings."""

    camera: CameraConfig = field(default_factory=CameraConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    regression: RegressionConfig = field(default_factory=RegressionConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def with_overrides(self, **sections: object) -> "RidgeGazeConfig":
        """Return a copy with whole sections replaced (e.g. ``pipeline=...``)."""
        return replace(self, **sections)


# ──────────────────────────────────────────────
# Loader
# ──────────────────────────────────────────────


def _merge(defaults: dict, overrides: dict) -> dict:
    """
    Deep-merge *overrides* into *defaults*, returning a new dict.

    Nested dicts are merged recursively; scalar values in overrides win.

    Args:
        defaults: Base dictionary of default values.
        overrides: Override values loaded from YAML.

    Returns:
        A new dict with overrides applied on top of defaults.
    """
    result: dict = dict(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _resolve_path(config_path: Path | str | None) -> Path | None:
    """Apply the config file search order and return the chosen path, if any."""
    if config_path is not None:
        resolved = Path(config_path)
        if not resolved.exists():
            raise FileNotFoundError(f"Config file not found: {resolved}")
        return resolved
    if "RIDGEGAZE_CONFIG" in os.environ:
        resolved = Path(os.environ["RIDGEGAZE_CONFIG"])
        if not resolved.exists():
            raise FileNotFoundError(
                f"RIDGEGAZE_CONFIG points to missing file: {resolved}"
            )
        return resolved
    # Auto-discover: walk up from this file to find config/ridgegaze.yaml
    here = Path(__file__).resolve()
    for parent in (here.parent.parent.parent, here.parent.parent):
        candidate = parent / "config" / "ridgegaze.yaml"
        if candidate.exists():
            return candidate
    return None


def config_from_dict(raw: dict) -> RidgeGazeConfig:
    """
    Build and validate a :class:`RidgeGazeConfig` from a plain mapping.

    Missing sections and keys fall back to the dataclass defaults.

    Args:
        raw: Mapping shaped like ``ridgegaze.yaml``.

    Returns:
        A frozen, validated configuration.

    Raises:
        ValueError: If a key is unknown or a value violates a constraint.
    """
    try:
        camera_cfg = CameraConfig(**raw.get("camera", {}))
        tracker_cfg = TrackerConfig(**raw.get("tracker", {}))

        # RegressionConfig nests the weighting section
        reg_raw = dict(raw.get("regression", {}))
        weighting_cfg = WeightingConfig(**reg_raw.pop("weighting", {}))
        regression_cfg = RegressionConfig(weighting=weighting_cfg, **reg_raw)

        pipeline_cfg = PipelineConfig(**raw.get("pipeline", {}))
        storage_cfg = StorageConfig(**raw.get("storage", {}))
        log_cfg = LoggingConfig(**raw.get("logging", {}))
    except TypeError as exc:
        raise ValueError(f"Invalid config value: {exc}") from exc

    _validate_config(camera_cfg, tracker_cfg, regression_cfg, pipeline_cfg)

    return RidgeGazeConfig(
        camera=camera_cfg,
        tracker=tracker_cfg,
        regression=regression_cfg,
        pipeline=pipeline_cfg,
        storage=storage_cfg,
        logging=log_cfg,
    )


def load_config(
    config_path: Path | str | None = None,
    overrides: Optional[dict] = None,
) -> RidgeGazeConfig:
    """
    Load, validate, and return a RidgeGazeConfig from a YAML file.

    The search order for the config file is:
    1. *config_path* argument (if provided)
    2. RIDGEGAZE_CONFIG environment variable
    3. ``config/ridgegaze.yaml`` relative to this file's project root
    4. Built-in defaults (no file required)

    Args:
        config_path: Optional path to a ``ridgegaze.yaml`` file.
        overrides: Optional mapping deep-merged on top of the file contents
            (used by the CLI for ``--regression`` and friends).

    Returns:
        A fully populated and frozen :class:`RidgeGazeConfig` instance.

    Raises:
        ValueError: If a YAML field has an invalid type or value.
        FileNotFoundError: If *config_path* is explicitly given but does not exist.
    """
    resolved_path = _resolve_path(config_path)

    raw: dict = {}
    if resolved_path is not None:
        logger.info("Loading config from: %s", resolved_path)
        with resolved_path.open("r", encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file must be a YAML mapping, got: {type(loaded)}")
        raw = loaded
    else:
        logger.info("No config file found — using built-in defaults")

    if overrides:
        raw = _merge(raw, overrides)

    config = config_from_dict(raw)
    logger.debug("Config loaded: %s", config)
    return config


def _validate_config(
    camera: CameraConfig,
    tracker: TrackerConfig,
    regression: RegressionConfig,
    pipeline: PipelineConfig,
) -> None:
    """
    Validate cross-field constraints on the loaded configuration.

    Raises:
        ValueError: If any configured value violates a hard constraint.
    """
    if camera.fps <= 0:
        raise ValueError(f"camera.fps must be positive, got {camera.fps}")
    if camera.width <= 0 or camera.height <= 0:
        raise ValueError(
            f"camera resolution must be positive, got {camera.width}x{camera.height}"
        )
    if not (0.0 < tracker.face_feedback_box_ratio <= 1.0):
        raise ValueError(
            "tracker.face_feedback_box_ratio must be in (0, 1], "
            f"got {tracker.face_feedback_box_ratio}"
        )
    if regression.ridge_lambda <= 0.0:
        raise ValueError(
            f"regression.ridge_lambda must be > 0, got {regression.ridge_lambda}"
        )
    if regression.data_window < 1 or regression.trail_window < 1:
        raise ValueError("regression.data_window and trail_window must be ≥ 1")
    if regression.resize_width < 1 or regression.resize_height < 1:
        raise ValueError("regression.resize_width and resize_height must be ≥ 1")
    weighting = regression.weighting
    if weighting.decay not in _DECAY_RULES:
        raise ValueError(
            f"regression.weighting.decay must be one of {sorted(_DECAY_RULES)}, "
            f"got '{weighting.decay}'"
        )
    if weighting.half_life <= 0.0:
        raise ValueError(
            f"regression.weighting.half_life must be > 0, got {weighting.half_life}"
        )
    if weighting.click_weight <= 0.0 or weighting.move_weight <= 0.0:
        raise ValueError("regression.weighting click/move weights must be > 0")
    if pipeline.smoothing_window < 1 or pipeline.stored_points < 1:
        raise ValueError("pipeline.smoothing_window and stored_points must be ≥ 1")
    if pipeline.move_tick_ms < 0.0:
        raise ValueError(
            f"pipeline.move_tick_ms must be ≥ 0, got {pipeline.move_tick_ms}"
        )
    if pipeline.extract_timeout_ms <= 0.0:
        raise ValueError(
            f"pipeline.extract_timeout_ms must be > 0, got {pipeline.extract_timeout_ms}"
        )
