"""
storage — Calibration persistence across sessions.
"""

from ridgegaze.storage.calibration_store import (
    CalibrationStore,
    DataPointRecord,
    EyePatchRecord,
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
)

__all__ = [
    "CalibrationStore",
    "DataPointRecord",
    "EyePatchRecord",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
]
