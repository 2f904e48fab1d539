"""
ridgegaze/core/errors.py — Exception taxonomy for the gaze pipeline.

Only :class:`MediaAccessError` is ever raised out of the running pipeline;
the others are logged and reported to the ``on_event`` callback while the
loop degrades (null prediction, stale weights) and keeps going.
"""

from __future__ import annotations


class RidgeGazeError(Exception):
    """Base class for every error raised by ridgegaze."""


class NoRegressionConfigured(RidgeGazeError):
    """A prediction was requested but no regressor is active or fitted."""


class FeatureExtractionFailure(RidgeGazeError):
    """The tracker raised while extracting eye features for a frame."""


class MediaAccessError(RidgeGazeError):
    """The camera (or static video) could not be opened."""


class WorkerFailure(RidgeGazeError):
    """A background regression solve raised inside the worker thread."""


class PersistenceError(RidgeGazeError):
    """The calibration key-value store failed to read or write."""


class UnknownModuleError(RidgeGazeError, KeyError):
    """
    A tracker or regression name is not present in the registry.

    Args:
        kind: ``'tracker'`` or ``'regression'``.
        name: The requested name.
        options: The names that are registered.
    """

    def __init__(self, kind: str, name: str, options: list[str]) -> None:
        self.kind = kind
        self.name = name
        self.options = list(options)
        super().__init__(
            f"Invalid {kind} selection {name!r}; options are: {', '.join(self.options)}"
        )

    def __str__(self) -> str:
        return str(self.args[0])
