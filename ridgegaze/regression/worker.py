"""
ridgegaze/regression/worker.py — Message bridge to a background solve thread.

The bridge owns a daemon thread and two queues. Messages posted to the inbox
are handled strictly in submission order by a single handler callable.
Replies to :meth:`WorkerBridge.post` land in the outbox and are drained with
:meth:`WorkerBridge.poll`; replies to :meth:`WorkerBridge.request` resolve a
:class:`concurrent.futures.Future`.

No state is shared between the caller and the handler: every message carries
copies of what the worker needs.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Optional

import numpy as np

from ridgegaze.core.errors import WorkerFailure
from ridgegaze.core.types import DataPoint, EyeFeatures

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────
# Messages
# ──────────────────────────────────────────

@dataclass(frozen=True)
class AddMessage:
    """Append one training example and refit."""

    point: DataPoint
    generation: int = 0


@dataclass(frozen=True)
class PredictMessage:
    """Predict a screen point from eye features with the worker's weights."""

    features: EyeFeatures


@dataclass(frozen=True)
class SetDataMessage:
    """Replace the worker's training data and refit once."""

    points: tuple[DataPoint, ...]
    generation: int = 0


@dataclass(frozen=True)
class ResetMessage:
    """Drop all training data and weights."""

    generation: int = 0


@dataclass(frozen=True)
class WeightsMessage:
    """
    Reply carrying freshly solved weights (``None`` after a reset).

    ``generation`` echoes the message that produced it, so the caller can
    drop solves issued before its last reset.
    """

    weights: Optional[np.ndarray]
    n_samples: int
    generation: int = 0


@dataclass
class _Envelope:
    message: Any
    future: Optional[Future] = None


_STOP = object()


# ──────────────────────────────────────────
# Bridge
# ──────────────────────────────────────────

class WorkerBridge:
    """
    Ordered request channel to a single worker thread.

    Args:
        handler: Called in the worker thread with each message; its return
            value is the reply (``None`` means no reply).
        name: Thread name, also used in log lines.
    """

    def __init__(self, handler: Callable[[Any], Any], name: str = "ridgegaze-worker") -> None:
        self._handler = handler
        self._name = name
        self._inbox: queue.Queue = queue.Queue()
        self._outbox: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self.failures = 0

    # ──────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────

    def start(self) -> None:
        """Start the worker thread (no-op if already running)."""
        if self.is_alive:
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.debug("%s started", self._name)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stop(self, timeout: float = 2.0) -> None:
        """
        Stop the worker after the messages already queued ahead of the stop.

        Requests still queued when the worker exits are cancelled.

        Args:
            timeout: Seconds to wait for the thread to exit.
        """
        if self._thread is None:
            return
        self._inbox.put(_STOP)
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("%s did not exit within %.1fs", self._name, timeout)
        self._thread = None

        cancelled = 0
        stop_pending = False
        while True:
            try:
                envelope = self._inbox.get_nowait()
            except queue.Empty:
                break
            if envelope is _STOP:
                stop_pending = True
            elif envelope.future is not None:
                envelope.future.cancel()
                cancelled += 1
        if stop_pending:
            # The worker is still busy; let it exit once the handler returns
            self._inbox.put(_STOP)
        if cancelled:
            logger.debug("%s cancelled %d pending requests", self._name, cancelled)

    # ──────────────────────────────────────────
    # Messaging
    # ──────────────────────────────────────────

    def post(self, message: Any) -> None:
        """Queue a fire-and-forget message; its reply goes to the outbox."""
        self._inbox.put(_Envelope(message))

    def request(self, message: Any) -> Future:
        """Queue a message and return a Future resolved with its reply."""
        future: Future = Future()
        self._inbox.put(_Envelope(message, future))
        return future

    def poll(self) -> list[Any]:
        """Drain all replies currently in the outbox without blocking."""
        replies: list[Any] = []
        while True:
            try:
                replies.append(self._outbox.get_nowait())
            except queue.Empty:
                return replies

    # ──────────────────────────────────────────
    # Worker thread
    # ──────────────────────────────────────────

    def _run(self) -> None:
        while True:
            envelope = self._inbox.get()
            if envelope is _STOP:
                break
            future = envelope.future
            if future is not None and not future.set_running_or_notify_cancel():
                continue
            try:
                reply = self._handler(envelope.message)
            except Exception as exc:  # noqa: BLE001
                self.failures += 1
                failure = WorkerFailure(
                    f"{type(envelope.message).__name__} failed in {self._name}: {exc}"
                )
                failure.__cause__ = exc
                logger.error("%s", failure)
                if future is not None:
                    future.set_exception(failure)
                continue
            if future is not None:
                future.set_result(reply)
            elif reply is not None:
                self._outbox.put(reply)
        logger.debug("%s exited", self._name)
