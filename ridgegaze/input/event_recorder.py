"""
ridgegaze/input/event_recorder.py — Turn mouse clicks and moves into training data.

The user is assumed to look where they click or move the cursor. Clicks are
recorded immediately and persisted; moves are rate-limited to one per
``pipeline.move_tick_ms``. Both are dropped while the session is paused.

The global mouse hook uses pynput (``pip install ridgegaze[mouse]``). Its
callbacks run on the hook thread and are marshalled onto the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from ridgegaze.core.session import GazeSession
from ridgegaze.core.types import EventType
from ridgegaze.storage.calibration_store import CalibrationStore

logger = logging.getLogger(__name__)


class EventRecorder:
    """
    Records click and move events into a :class:`GazeSession`.

    Args:
        session: The session whose regressors receive the examples.
        store: Calibration store used to persist after clicks; optional.
        clock: Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self,
        session: GazeSession,
        store: Optional[CalibrationStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._store = store
        self._clock = clock
        self._last_move: Optional[float] = None
        self._listener: Optional[Any] = None
        self.clicks_recorded = 0
        self.moves_recorded = 0

    # ──────────────────────────────────────────
    # Event handlers
    # ──────────────────────────────────────────

    async def on_click(self, x: float, y: float) -> bool:
        """
        Record a click at screen ``(x, y)`` and persist the calibration.

        Returns:
            True if the click became a training example.
        """
        recorded = self._session.record_screen_position(x, y, EventType.CLICK)
        if not recorded:
            return False
        self.clicks_recorded += 1
        if self._session.save_across_sessions and self._store is not None:
            await self._store.save_from(self._session)
        return True

    def on_move(self, x: float, y: float) -> bool:
        """
        Record a cursor move at ``(x, y)`` if the move tick has elapsed.

        Returns:
            True if the move became a training example.
        """
        if self._session.paused:
            return False
        now = self._clock()
        tick = self._session.config.pipeline.move_tick_ms / 1000.0
        if self._last_move is not None and now - self._last_move <= tick:
            return False
        self._last_move = now
        recorded = self._session.record_screen_position(x, y, EventType.MOVE)
        if recorded:
            self.moves_recorded += 1
        return recorded

    # ──────────────────────────────────────────
    # Global mouse hook
    # ──────────────────────────────────────────

    @property
    def is_attached(self) -> bool:
        return self._listener is not None

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Start a global pynput mouse listener feeding this recorder on ``loop``.

        Raises:
            ImportError: If pynput is not installed.
        """
        if self._listener is not None:
            return
        from pynput import mouse  # type: ignore[import]  # optional dep

        def _on_move(x: int, y: int) -> None:
            loop.call_soon_threadsafe(self.on_move, float(x), float(y))

        def _on_click(x: int, y: int, button: Any, pressed: bool) -> None:
            if pressed:  # Only track press, not release
                asyncio.run_coroutine_threadsafe(self.on_click(float(x), float(y)), loop)

        self._listener = mouse.Listener(on_move=_on_move, on_click=_on_click)
        self._listener.start()
        logger.info("Mouse event listeners attached")

    def detach(self) -> None:
        """Stop the mouse listener if one is running."""
        if self._listener is None:
            return
        self._listener.stop()
        self._listener = None
        logger.info("Mouse event listeners removed")
