"""Tests for services/journey_builder.py."""

from datetime import timedelta, timezone

import pytest

from routeanalytics.services.journey_builder import (
    build_session_frame,
    chronological_sessions,
    extract_journeys,
    utc_timestamp,
)
from routeanalytics.utils.statistical_analyzer import session_performance_score

from factories import BASE_TIME, make_input, make_route, make_session


def _snapshot(*sessions):
    by_route = {}
    for session in sessions:
        by_route.setdefault(session.route_pattern, []).append(session)
    return make_input([make_route(pattern, items) for pattern, items in by_route.items()])


class TestBuildSessionFrame:
    def test_one_row_per_session_with_score(self):
        frame = build_session_frame(_snapshot(
            make_session("/home", "a", 0, 60.0, 0.0, 0.0),
            make_session("/feed", "a", 5, 30.0, 500.0, 50.0),
        ))
        assert len(frame) == 2
        assert sorted(frame["score"].round(6).tolist()) == [50.0, 100.0]

    def test_empty_snapshot(self):
        frame = build_session_frame(make_input([]))
        assert frame.empty
        assert "score" in frame.columns


class TestExtractJourneys:
    def test_gap_over_window_starts_new_journey(self):
        frame = build_session_frame(_snapshot(
            make_session("/home", "a", 0),
            make_session("/feed", "a", 5),
            make_session("/feed/:id", "a", 50),
            make_session("/profile", "a", 55),
        ))
        journeys = extract_journeys(frame, 30)

        assert [j["routes"] for j in journeys] == [("/home", "/feed"), ("/feed/:id", "/profile")]
        assert journeys[0]["timestamps_ms"][1] - journeys[0]["timestamps_ms"][0] == pytest.approx(5 * 60_000)

    def test_gap_equal_to_window_stays_in_journey(self):
        frame = build_session_frame(_snapshot(
            make_session("/home", "a", 0),
            make_session("/feed", "a", 30),
        ))
        assert [j["routes"] for j in extract_journeys(frame, 30)] == [("/home", "/feed")]

    def test_single_visits_are_dropped(self):
        frame = build_session_frame(_snapshot(
            make_session("/home", "a", 0),
            make_session("/feed", "b", 0),
        ))
        assert extract_journeys(frame, 30) == []

    def test_visits_ordered_within_device(self):
        # /feed is listed first in the snapshot but visited second
        frame = build_session_frame(_snapshot(
            make_session("/feed", "a", 10),
            make_session("/home", "a", 0),
        ))
        assert extract_journeys(frame, 30)[0]["routes"] == ("/home", "/feed")

    def test_devices_keep_first_seen_order(self):
        frame = build_session_frame(_snapshot(
            make_session("/home", "zeta", 100),
            make_session("/home", "alpha", 0),
            make_session("/feed", "zeta", 105),
            make_session("/feed", "alpha", 5),
        ))
        journeys = extract_journeys(frame, 30)
        assert [j["device_id"] for j in journeys] == ["zeta", "alpha"]

    def test_journey_carries_metric_series(self):
        frame = build_session_frame(_snapshot(
            make_session("/home", "a", 0, 58.0, 200.0, 20.0),
            make_session("/feed", "a", 2, 40.0, 320.0, 45.0),
        ))
        journey = extract_journeys(frame, 30)[0]
        assert journey["fps"] == [58.0, 40.0]
        assert journey["memory"] == [200.0, 320.0]
        assert journey["cpu"] == [20.0, 45.0]
        assert journey["scores"] == pytest.approx([
            session_performance_score(58.0, 200.0, 20.0),
            session_performance_score(40.0, 320.0, 45.0),
        ])


class TestChronologicalSessions:
    def test_naive_timestamps_are_read_as_utc(self):
        naive = BASE_TIME.replace(tzinfo=None)
        assert utc_timestamp(naive) == BASE_TIME
        assert utc_timestamp(BASE_TIME.astimezone(timezone(timedelta(hours=2)))) == BASE_TIME

    def test_mixed_naive_and_aware_sessions_sort(self):
        late = make_session("/home", "d1", 120)
        early = make_session("/home", "d1", 0).model_copy(update={"timestamp": BASE_TIME.replace(tzinfo=None)})
        middle = make_session("/home", "d1", 60)

        ordered = chronological_sessions(make_route("/home", [late, early, middle]))
        assert [s.session_id for s in ordered] == [early.session_id, middle.session_id, late.session_id]
