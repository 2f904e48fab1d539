"""
tests/test_session.py — Unit tests for GazeSession registries, prediction and training.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import numpy as np
import pytest

from fakes import FakeTracker, ScriptedRegression, make_eye_features
from ridgegaze.core.errors import NoRegressionConfigured, UnknownModuleError
from ridgegaze.core.events import PipelineEvent
from ridgegaze.core.session import GazeSession
from ridgegaze.core.types import EventType, Point
from ridgegaze.regression import RidgeRegression, WeightedRidgeRegression


@pytest.fixture
def events() -> list[PipelineEvent]:
    return []


@pytest.fixture
def session(config, events) -> GazeSession:
    s = GazeSession(config, on_event=events.append)
    yield s
    s.close()


class TestRegistries:
    def test_builtin_names(self, session: GazeSession) -> None:
        assert set(session.regression_registry) == {"ridge", "weighted_ridge", "threaded_ridge"}
        assert set(session.tracker_registry) == {"facemesh"}

    def test_unknown_regression_lists_options(self, session: GazeSession) -> None:
        with pytest.raises(UnknownModuleError) as info:
            session.set_regression("nope")
        assert info.value.kind == "regression"
        assert "ridge" in info.value.options
        assert "nope" in str(info.value)

    def test_unknown_tracker_is_a_key_error(self, session: GazeSession) -> None:
        with pytest.raises(KeyError):
            session.set_tracker("nope")

    def test_set_tracker_closes_previous(self, session: GazeSession) -> None:
        first, second = FakeTracker(), FakeTracker()
        session.register_tracker("first", lambda: first)
        session.register_tracker("second", lambda: second)
        session.set_tracker("first")
        session.set_tracker("second")
        assert first.closed
        assert session.tracker is second
        assert session.tracker_name == "second"

    def test_set_regression_seeds_from_primary(self, session: GazeSession) -> None:
        session.set_regression("ridge")
        session.latest_features = make_eye_features(1)
        for i in range(4):
            session.record_screen_position(i * 10.0, i * 20.0)

        old = session.regressions[0]
        new = session.set_regression("weighted_ridge")
        assert isinstance(new, WeightedRidgeRegression)
        assert session.regressions == [new]
        assert [p.screen_position for p in new.get_data()] == [
            p.screen_position for p in old.get_data()
        ]
        assert new.is_fitted

    def test_set_regression_closes_outgoing_models(self, session: GazeSession) -> None:
        scripted = ScriptedRegression()
        session.register_regression("scripted", lambda: scripted)
        session.set_regression("scripted")
        session.set_regression("ridge")
        assert scripted.closed

    def test_add_regression_extends_ensemble(self, session: GazeSession) -> None:
        session.set_regression("ridge")
        session.add_regression("weighted_ridge")
        assert [r.name for r in session.regressions] == ["ridge", "weighted_ridge"]


class TestPredict:
    def test_no_features_returns_none(self, session: GazeSession) -> None:
        session.register_regression("scripted", ScriptedRegression)
        session.set_regression("scripted")
        assert session.predict(None) is None

    def test_empty_ensemble_reports_error(self, session: GazeSession, events) -> None:
        assert session.predict(make_eye_features()) is None
        errors = [e.payload for e in events if e.kind == "error"]
        assert len(errors) == 1
        assert isinstance(errors[0], NoRegressionConfigured)

    def test_unfitted_primary_signals_no_regression(self, session: GazeSession, events) -> None:
        session.set_regression("ridge")
        assert session.predict(make_eye_features()) is None
        assert session.predict(make_eye_features()) is None
        errors = [e.payload for e in events if e.kind == "error"]
        assert len(errors) == 2
        assert all(isinstance(e, NoRegressionConfigured) for e in errors)
        assert "ridge" in str(errors[0])

    def test_unfitted_indexed_regressor_signals_no_regression(
        self, session: GazeSession, events
    ) -> None:
        session.register_regression("scripted", ScriptedRegression)
        session.set_regression("scripted")
        session.add_regression("ridge")
        assert session.predict(make_eye_features(), index=1) is None
        errors = [e.payload for e in events if e.kind == "error"]
        assert len(errors) == 1
        assert isinstance(errors[0], NoRegressionConfigured)

    def test_fitted_primary_is_quiet(self, session: GazeSession, events) -> None:
        session.set_regression("ridge")
        session.latest_features = make_eye_features()
        session.record_screen_position(10.0, 20.0)
        assert session.predict(make_eye_features()) is not None
        assert not [e for e in events if e.kind == "error"]

    def test_single_regressor_has_no_all(self, session: GazeSession) -> None:
        session.register_regression("scripted", lambda: ScriptedRegression([(1.0, 2.0)]))
        session.set_regression("scripted")
        prediction = session.predict(make_eye_features())
        assert (prediction.x, prediction.y) == (1.0, 2.0)
        assert prediction.all is None
        assert prediction.eye_features is not None

    def test_ensemble_reports_all_points(self, session: GazeSession) -> None:
        session.register_regression("a", lambda: ScriptedRegression([(1.0, 1.0)]))
        session.register_regression("b", lambda: ScriptedRegression([(9.0, 9.0)]))
        session.set_regression("a")
        session.add_regression("b")

        prediction = session.predict(make_eye_features())
        assert (prediction.x, prediction.y) == (1.0, 1.0)
        assert prediction.all == [Point(1.0, 1.0), Point(9.0, 9.0)]

        indexed = session.predict(make_eye_features(), index=1)
        assert (indexed.x, indexed.y) == (9.0, 9.0)
        assert indexed.all is None


class TestRecordScreenPosition:
    def test_records_to_every_regressor(self, session: GazeSession) -> None:
        a, b = ScriptedRegression(), ScriptedRegression()
        session.register_regression("a", lambda: a)
        session.register_regression("b", lambda: b)
        session.set_regression("a")
        session.add_regression("b")
        session.latest_features = make_eye_features()

        assert session.record_screen_position(10, 20, "move")
        assert a.added[0][1:] == (Point(10.0, 20.0), EventType.MOVE)
        assert len(b.added) == 1

    def test_dropped_when_paused(self, session: GazeSession) -> None:
        scripted = ScriptedRegression()
        session.register_regression("scripted", lambda: scripted)
        session.set_regression("scripted")
        session.latest_features = make_eye_features()
        session.paused = True
        assert not session.record_screen_position(1, 1)
        assert scripted.added == []

    def test_dropped_without_features(self, session: GazeSession) -> None:
        scripted = ScriptedRegression()
        session.register_regression("scripted", lambda: scripted)
        session.set_regression("scripted")
        assert not session.record_screen_position(1, 1)

    def test_failing_regressor_is_reported(self, session: GazeSession, events) -> None:
        broken = ScriptedRegression()
        broken.add_data = MagicMock(side_effect=RuntimeError("nope"))
        healthy = ScriptedRegression()
        session.register_regression("broken", lambda: broken)
        session.register_regression("healthy", lambda: healthy)
        session.set_regression("broken")
        session.add_regression("healthy")
        session.latest_features = make_eye_features()

        assert session.record_screen_position(5, 5)
        assert len(healthy.added) == 1
        assert any(e.kind == "error" for e in events)


class TestHousekeeping:
    def test_clear_data_resets_models_and_windows(self, session: GazeSession) -> None:
        session.set_regression("ridge")
        session.latest_features = make_eye_features()
        session.record_screen_position(1, 1)
        session.smoothing.push(Point(1, 1))
        session.stored_points.push(Point(2, 2))

        session.clear_data()
        assert session.regressions[0].get_data() == []
        assert len(session.smoothing) == 0
        assert session.get_stored_points() == ([], [])

    def test_get_stored_points(self, session: GazeSession) -> None:
        session.stored_points.push(Point(1, 2))
        session.stored_points.push(Point(3, 4))
        assert session.get_stored_points() == ([1, 3], [2, 4])

    def test_close_drops_everything(self, session: GazeSession) -> None:
        tracker, scripted = FakeTracker(), ScriptedRegression()
        session.register_tracker("fake", lambda: tracker)
        session.register_regression("scripted", lambda: scripted)
        session.set_tracker("fake")
        session.set_regression("scripted")

        session.close()
        assert tracker.closed and scripted.closed
        assert session.tracker is None
        assert session.regressions == []

    def test_elapsed_ms_is_monotonic(self, session: GazeSession) -> None:
        session.reset_clock()
        first = session.elapsed_ms()
        assert first >= 0.0
        assert session.elapsed_ms() >= first

    def test_real_ridge_end_to_end(self, session: GazeSession) -> None:
        session.set_regression("ridge")
        for seed in range(6):
            session.latest_features = make_eye_features(seed)
            session.record_screen_position(seed * 50.0, 300.0 - seed * 20.0)
        assert isinstance(session.regressions[0], RidgeRegression)
        prediction = session.predict(make_eye_features(3))
        assert prediction is not None
        assert np.isfinite([prediction.x, prediction.y]).all()
