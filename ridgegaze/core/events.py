"""
ridgegaze/core/events.py — Events the pipeline reports to its observer.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class PipelineEvent:
    """
    An event emitted by the pipeline that an embedding application can observe.

    Attributes:
        kind: One of 'state_change', 'error', 'feedback', 'extract_timeout'.
        payload: Arbitrary data associated with the event.
        timestamp: Monotonic time of event creation.
    """

    kind: str
    payload: object = None
    timestamp: float = field(default_factory=time.monotonic)


# Type alias for observer callbacks
EventCallback = Callable[[PipelineEvent], None]


def emit(callback: Optional[EventCallback], event: PipelineEvent) -> None:
    """
    Invoke ``callback`` with ``event`` (swallows and logs callback errors).

    Args:
        callback: The observer, or ``None``.
        event: The event to dispatch.
    """
    if callback is None:
        return
    try:
        callback(event)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Event callback raised: %s", exc)
