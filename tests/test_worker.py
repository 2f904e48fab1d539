"""
tests/test_worker.py — Tests for the worker bridge and the threaded ridge variant.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import CancelledError

import numpy as np
import pytest

from fakes import vector_featurizer
from ridgegaze.core.errors import WorkerFailure
from ridgegaze.core.types import EventType
from ridgegaze.regression.ridge import RidgeRegression
from ridgegaze.regression.threaded import ThreadedRidgeRegression
from ridgegaze.regression.worker import WorkerBridge

_TIMEOUT = 5.0


def _drain(bridge: WorkerBridge, expected: int) -> list:
    """Poll until *expected* replies have arrived or the timeout elapses."""
    replies: list = []
    deadline = time.monotonic() + _TIMEOUT
    while len(replies) < expected and time.monotonic() < deadline:
        replies.extend(bridge.poll())
        time.sleep(0.005)
    return replies


# ──────────────────────────────────────────
# WorkerBridge
# ──────────────────────────────────────────

class TestWorkerBridge:
    def test_messages_are_handled_in_submission_order(self) -> None:
        bridge = WorkerBridge(lambda m: m * 10)
        bridge.start()
        try:
            for i in range(1, 51):
                bridge.post(i)
            assert _drain(bridge, 50) == [i * 10 for i in range(1, 51)]
        finally:
            bridge.stop()

    def test_none_replies_are_not_queued(self) -> None:
        bridge = WorkerBridge(lambda m: None)
        bridge.start()
        try:
            bridge.post("x")
            assert bridge.request("y").result(timeout=_TIMEOUT) is None
            assert bridge.poll() == []
        finally:
            bridge.stop()

    def test_request_resolves_after_earlier_posts(self) -> None:
        seen: list[int] = []

        def handler(message: int) -> int:
            seen.append(message)
            return len(seen)

        bridge = WorkerBridge(handler)
        bridge.start()
        try:
            bridge.post(1)
            bridge.post(2)
            assert bridge.request(3).result(timeout=_TIMEOUT) == 3
            assert seen == [1, 2, 3]
        finally:
            bridge.stop()

    def test_handler_failure_is_reported_and_worker_survives(self) -> None:
        def handler(message: str) -> str:
            if message == "bad":
                raise ValueError("boom")
            return message.upper()

        bridge = WorkerBridge(handler)
        bridge.start()
        try:
            failed = bridge.request("bad")
            with pytest.raises(WorkerFailure) as info:
                failed.result(timeout=_TIMEOUT)
            assert isinstance(info.value.__cause__, ValueError)
            assert bridge.request("ok").result(timeout=_TIMEOUT) == "OK"
            assert bridge.failures == 1
        finally:
            bridge.stop()

    def test_stop_cancels_queued_requests(self) -> None:
        release = threading.Event()
        started = threading.Event()

        def handler(message: str) -> str:
            started.set()
            release.wait(_TIMEOUT)
            return message

        bridge = WorkerBridge(handler)
        bridge.start()
        busy = bridge.request("first")
        assert started.wait(_TIMEOUT)
        pending = bridge.request("second")

        bridge.stop(timeout=0.05)
        release.set()

        assert pending.cancelled()
        with pytest.raises(CancelledError):
            pending.result(timeout=0)
        assert busy.result(timeout=_TIMEOUT) == "first"

    def test_stop_joins_thread(self) -> None:
        bridge = WorkerBridge(lambda m: m)
        bridge.start()
        assert bridge.is_alive
        bridge.stop()
        assert not bridge.is_alive

    def test_stop_without_start_is_noop(self) -> None:
        WorkerBridge(lambda m: m).stop()


# ──────────────────────────────────────────
# ThreadedRidgeRegression
# ──────────────────────────────────────────

def _training_rows(n: int = 30) -> list[tuple[np.ndarray, tuple[float, float]]]:
    rng = np.random.default_rng(7)
    rows = []
    for _ in range(n):
        x = rng.uniform(0.0, 1.0, size=3)
        rows.append((x, (float(x @ [300.0, 10.0, 5.0]), float(x @ [1.0, 200.0, 40.0]))))
    return rows


class TestThreadedRidgeRegression:
    def test_predict_is_none_before_fit(self) -> None:
        model = ThreadedRidgeRegression(featurizer=vector_featurizer)
        try:
            assert model.predict(np.ones(3)) is None
            assert model.predict_async(np.ones(3)).result(timeout=_TIMEOUT) is None
        finally:
            model.close()

    def test_matches_synchronous_model(self) -> None:
        rows = _training_rows()
        basic = RidgeRegression(featurizer=vector_featurizer)
        threaded = ThreadedRidgeRegression(featurizer=vector_featurizer)
        try:
            for x, y in rows:
                basic.add_data(x, y, EventType.CLICK)
                threaded.add_data(x, y, EventType.CLICK)

            query = np.array([0.3, 0.6, 0.9])
            # Resolves after every queued AddMessage has been solved
            async_point = threaded.predict_async(query).result(timeout=_TIMEOUT)
            expected = basic.predict(query)
            assert np.allclose(async_point, expected)

            # The outbox now holds every reply; the last one carries the final weights
            assert threaded.is_fitted
            assert np.allclose(threaded.predict(query), expected)
        finally:
            threaded.close()

    def test_get_data_does_not_cross_threads(self) -> None:
        threaded = ThreadedRidgeRegression(featurizer=vector_featurizer)
        try:
            for x, y in _training_rows(5):
                threaded.add_data(x, y, EventType.MOVE)
            assert len(threaded.get_data()) == 5
            assert all(p.event_type is EventType.MOVE for p in threaded.get_data())
        finally:
            threaded.close()

    def test_solve_failure_keeps_previous_weights(self) -> None:
        bad = object()

        def featurizer(features: object) -> np.ndarray:
            if features is bad:
                raise ValueError("cannot featurize")
            return vector_featurizer(features)

        model = ThreadedRidgeRegression(featurizer=featurizer)
        try:
            for x, y in _training_rows(10):
                model.add_data(x, y)
            query = np.array([0.5, 0.5, 0.5])
            before = model.predict_async(query).result(timeout=_TIMEOUT)

            model.add_data(bad, (0.0, 0.0))
            after = model.predict_async(query).result(timeout=_TIMEOUT)

            assert model.failures == 1
            assert np.allclose(before, after)
        finally:
            model.close()

    def test_init_resets_worker(self) -> None:
        model = ThreadedRidgeRegression(featurizer=vector_featurizer)
        try:
            for x, y in _training_rows(5):
                model.add_data(x, y)
            model.init()
            assert model.get_data() == []
            assert model.predict_async(np.ones(3)).result(timeout=_TIMEOUT) is None
            assert not model.is_fitted
        finally:
            model.close()

    def test_init_discards_solves_queued_before_it(self) -> None:
        gated = np.array([1.0, 2.0, 3.0])
        entered, gate = threading.Event(), threading.Event()

        def featurizer(features: object) -> np.ndarray:
            if features is gated:
                entered.set()
                gate.wait(_TIMEOUT)
            return vector_featurizer(features)

        model = ThreadedRidgeRegression(featurizer=featurizer)
        try:
            for x, y in _training_rows(5):
                model.add_data(x, y)
            model.add_data(gated, (100.0, 100.0))
            # Worker is now stuck inside the sixth Add; five solves sit in the outbox
            assert entered.wait(_TIMEOUT)

            model.init()
            assert model.predict(np.ones(3)) is None
            assert not model.is_fitted

            gate.set()
            assert model.predict_async(np.ones(3)).result(timeout=_TIMEOUT) is None
            assert model.predict(np.ones(3)) is None
            assert model.get_data() == []

            for x, y in _training_rows(5):
                model.add_data(x, y)
            assert model.predict_async(np.ones(3)).result(timeout=_TIMEOUT) is not None
            assert model.predict(np.ones(3)) is not None
        finally:
            gate.set()
            model.close()

    def test_set_data_seeds_worker(self) -> None:
        source = RidgeRegression(featurizer=vector_featurizer)
        for x, y in _training_rows():
            source.add_data(x, y)
        model = ThreadedRidgeRegression(featurizer=vector_featurizer)
        try:
            model.set_data(source.get_data())
            query = np.array([0.1, 0.2, 0.3])
            point = model.predict_async(query).result(timeout=_TIMEOUT)
            assert np.allclose(point, source.predict(query))
        finally:
            model.close()

    def test_close_stops_worker_thread(self) -> None:
        model = ThreadedRidgeRegression(featurizer=vector_featurizer)
        model.close()
        assert not model._bridge.is_alive
