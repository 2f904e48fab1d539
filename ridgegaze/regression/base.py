"""
ridgegaze/regression/base.py — Abstract interface shared by every regressor.

A regression model is trained online from (eye features, screen position)
pairs and maps new eye features to a screen point. Implementations register
under a name in :class:`~ridgegaze.core.session.GazeSession` and can be
swapped at runtime; the outgoing model's :meth:`get_data` seeds the new one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

from ridgegaze.core.types import DataPoint, EventType, EyeFeatures, Point


class RegressionModel(ABC):
    """
    Online regressor from :class:`EyeFeatures` to screen :class:`Point`.

    Subclasses must never fabricate a prediction: :meth:`predict` returns
    ``None`` until a fit has succeeded.
    """

    #: Registry name; overridden by subclasses.
    name: str = "regression"

    @abstractmethod
    def add_data(
        self,
        features: EyeFeatures,
        target: Sequence[float],
        event_type: EventType | str = EventType.CLICK,
    ) -> None:
        """
        Add one training example and refit (synchronously or in the background).

        Args:
            features: Eye features captured when the event fired.
            target: Screen ``(x, y)`` of the event.
            event_type: ``'click'`` or ``'move'``.
        """

    @abstractmethod
    def predict(self, features: Optional[EyeFeatures]) -> Optional[Point]:
        """Return the screen point for ``features``, or ``None`` if unfitted."""

    @abstractmethod
    def get_data(self) -> list[DataPoint]:
        """Export the retained training examples, oldest first."""

    @abstractmethod
    def set_data(self, data: Iterable[DataPoint]) -> None:
        """Replace the training set with ``data`` and refit once."""

    @abstractmethod
    def init(self) -> None:
        """Drop all training data and fitted state."""

    @property
    @abstractmethod
    def is_fitted(self) -> bool:
        """True once a solve has produced weights."""

    def close(self) -> None:
        """Release background resources. Synchronous models have none."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, fitted={self.is_fitted})"
