"""
ridgegaze/storage/calibration_store.py — Persist calibration data across sessions.

Two keys are written to an async key-value store after every click-sourced
training example: the session settings (a plain mapping) and the primary
regressor's training data (a list of :class:`DataPointRecord` dicts). Both
are loaded back into every active regressor once, before the first
prediction.

Persistence is best effort. Store and validation failures are logged and
reported as :class:`PersistenceError` to the session; they never propagate
into the gaze loop.
"""

from __future__ import annotations

import asyncio
import base64
import copy
import json
import logging
import math
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import numpy as np
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from ridgegaze.core.config import StorageConfig
from ridgegaze.core.errors import PersistenceError
from ridgegaze.core.types import DataPoint, EventType, EyeFeatures, EyePatch, Point

if TYPE_CHECKING:
    from ridgegaze.core.session import GazeSession

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────
# Key-value stores
# ──────────────────────────────────────────

class KeyValueStore(ABC):
    """Async key-value store holding JSON-compatible values."""

    @abstractmethod
    async def get_item(self, key: str) -> Any:
        """Return the value for ``key`` or ``None`` if absent."""

    @abstractmethod
    async def set_item(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key."""


class MemoryStore(KeyValueStore):
    """In-process store; values are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}

    async def get_item(self, key: str) -> Any:
        return copy.deepcopy(self._items.get(key))

    async def set_item(self, key: str, value: Any) -> None:
        self._items[key] = copy.deepcopy(value)

    async def clear(self) -> None:
        self._items.clear()


class JsonFileStore(KeyValueStore):
    """
    One JSON file per key inside a directory.

    File I/O runs in a worker thread; writes go to a temporary file that is
    atomically renamed over the target.

    Args:
        directory: Store directory, created on first write.
    """

    _SUFFIX = ".json"

    def __init__(self, directory: Path | str) -> None:
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}{self._SUFFIX}"

    async def get_item(self, key: str) -> Any:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set_item(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, self._path(key), value)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear)

    @staticmethod
    def _read(path: Path) -> Any:
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}") from exc

    def _write(self, path: Path, value: Any) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(value, fh)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Cannot write {path}: {exc}") from exc

    def _clear(self) -> None:
        if not self._dir.exists():
            return
        try:
            for path in self._dir.glob(f"*{self._SUFFIX}"):
                path.unlink()
        except OSError as exc:
            raise PersistenceError(f"Cannot clear {self._dir}: {exc}") from exc


# ──────────────────────────────────────────
# Persisted records
# ──────────────────────────────────────────

class EyePatchRecord(BaseModel):
    """
    Serialised :class:`EyePatch`.

    Pixels are stored as base64 of the raw ``uint8`` buffer alongside the
    array shape.
    """

    shape: list[int]
    data: str
    imagex: float
    imagey: float
    width: float
    height: float

    @field_validator("shape")
    @classmethod
    def shape_is_image(cls, v: list[int]) -> list[int]:
        if len(v) not in (2, 3) or any(d <= 0 for d in v):
            raise ValueError(f"patch shape must be 2-D or 3-D and positive, got {v}")
        return v

    @model_validator(mode="after")
    def data_matches_shape(self) -> "EyePatchRecord":
        raw = base64.b64decode(self.data, validate=True)
        if len(raw) != math.prod(self.shape):
            raise ValueError(
                f"patch data has {len(raw)} bytes, shape {self.shape} needs {math.prod(self.shape)}"
            )
        return self

    @classmethod
    def from_patch(cls, eye: EyePatch) -> "EyePatchRecord":
        pixels = np.ascontiguousarray(eye.patch, dtype=np.uint8)
        return cls(
            shape=list(pixels.shape),
            data=base64.b64encode(pixels.tobytes()).decode("ascii"),
            imagex=eye.imagex,
            imagey=eye.imagey,
            width=eye.width,
            height=eye.height,
        )

    def to_patch(self) -> EyePatch:
        pixels = np.frombuffer(base64.b64decode(self.data), dtype=np.uint8)
        return EyePatch(
            patch=pixels.reshape(self.shape).copy(),
            imagex=self.imagex,
            imagey=self.imagey,
            width=self.width,
            height=self.height,
        )


class DataPointRecord(BaseModel):
    """Serialised :class:`DataPoint`."""

    left: EyePatchRecord
    right: EyePatchRecord
    x: float
    y: float
    event_type: EventType
    timestamp: float

    @classmethod
    def from_point(cls, point: DataPoint) -> "DataPointRecord":
        return cls(
            left=EyePatchRecord.from_patch(point.eye_features.left),
            right=EyePatchRecord.from_patch(point.eye_features.right),
            x=point.screen_position.x,
            y=point.screen_position.y,
            event_type=point.event_type,
            timestamp=point.timestamp,
        )

    def to_point(self) -> DataPoint:
        return DataPoint(
            eye_features=EyeFeatures(left=self.left.to_patch(), right=self.right.to_patch()),
            screen_position=Point(self.x, self.y),
            event_type=self.event_type,
            timestamp=self.timestamp,
        )


# ──────────────────────────────────────────
# Calibration store
# ──────────────────────────────────────────

def _as_persistence_error(exc: Exception) -> PersistenceError:
    if isinstance(exc, PersistenceError):
        return exc
    wrapped = PersistenceError(f"{type(exc).__name__}: {exc}")
    wrapped.__cause__ = exc
    return wrapped


class CalibrationStore:
    """
    Loads and saves a session's calibration through a :class:`KeyValueStore`.

    Args:
        store: Backing key-value store.
        config: Key names and the persistence toggle.
    """

    def __init__(self, store: KeyValueStore, config: Optional[StorageConfig] = None) -> None:
        self._store = store
        self._cfg = config or StorageConfig()

    @classmethod
    def from_config(cls, config: StorageConfig) -> "CalibrationStore":
        """Build a store backed by JSON files under ``config.path``."""
        return cls(JsonFileStore(config.resolved_path), config)

    @property
    def store(self) -> KeyValueStore:
        return self._store

    async def load_into(self, session: "GazeSession") -> int:
        """
        Load persisted settings and training data into every active regressor.

        Returns:
            The number of training examples restored (0 on any failure).
        """
        try:
            settings = await self._store.get_item(self._cfg.settings_key)
            raw = await self._store.get_item(self._cfg.data_key)
        except Exception as exc:  # noqa: BLE001
            session.report_error(_as_persistence_error(exc))
            return 0

        if isinstance(settings, dict):
            session.settings.update(settings)
        if not raw:
            logger.info("No stored calibration data")
            return 0

        try:
            points = [DataPointRecord.model_validate(item).to_point() for item in raw]
        except (ValidationError, TypeError) as exc:
            session.report_error(PersistenceError(f"Stored calibration data is invalid: {exc}"))
            return 0

        try:
            for regression in session.regressions:
                regression.set_data(points)
        except Exception as exc:  # noqa: BLE001
            session.report_error(_as_persistence_error(exc))
            for regression in session.regressions:
                regression.init()
            return 0
        logger.info("Loaded %d stored calibration points", len(points))
        return len(points)

    async def save_from(self, session: "GazeSession") -> bool:
        """
        Persist the settings and the primary regressor's training data.

        Returns:
            True if both keys were written.
        """
        if not session.regressions:
            return False
        try:
            records = [
                DataPointRecord.from_point(p).model_dump(mode="json")
                for p in session.regressions[0].get_data()
            ]
        except (AttributeError, TypeError, ValueError) as exc:
            session.report_error(PersistenceError(f"Cannot serialise calibration data: {exc}"))
            return False

        try:
            await self._store.set_item(self._cfg.settings_key, dict(session.settings))
            await self._store.set_item(self._cfg.data_key, records)
        except Exception as exc:  # noqa: BLE001
            session.report_error(_as_persistence_error(exc))
            return False
        logger.debug("Saved %d calibration points", len(records))
        return True

    async def clear(self) -> None:
        """Wipe every persisted key; failures are logged."""
        try:
            await self._store.clear()
        except Exception as exc:  # noqa: BLE001
            logger.error("Clearing calibration store failed: %s", _as_persistence_error(exc))
