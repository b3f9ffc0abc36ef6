"""Tests for services/route_comparison.py."""

import pytest

from routeanalytics.services.route_comparison import (
    analyze_route_trends,
    compare_routes_against_global_performance,
    detect_route_anomalies,
    identify_problematic_routes,
    memory_trend_direction,
)

from factories import make_input, make_route, make_session, uniform_route


class TestDetectRouteAnomalies:
    def test_low_fps_against_app_average(self, app_averages_50):
        analysis_input = make_input([uniform_route("/map", 8, fps=20.0)], app_averages_50)
        anomalies = detect_route_anomalies(analysis_input)

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.metric_type == "fps"
        assert anomaly.current_value == 20.0
        assert anomaly.expected_value == pytest.approx(50.5)
        assert anomaly.anomaly_severity == "high"
        assert anomaly.deviation_from_norm == pytest.approx(-60.4, abs=0.1)
        assert anomaly.sessions_count == 8

    def test_sorted_by_severity(self, app_averages_50):
        analysis_input = make_input(
            [uniform_route("/slow", 4, fps=35.0), uniform_route("/frozen", 4, fps=10.0)],
            app_averages_50,
        )
        anomalies = detect_route_anomalies(analysis_input)
        assert [(a.route_pattern, a.anomaly_severity) for a in anomalies] == [
            ("/frozen", "critical"),
            ("/slow", "medium"),
        ]

    def test_memory_above_warning_level(self, app_averages_50):
        analysis_input = make_input([uniform_route("/gallery", 4, fps=55.0, memory=650.0)], app_averages_50)
        memory = [a for a in detect_route_anomalies(analysis_input) if a.metric_type == "memory"]
        assert len(memory) == 1
        assert memory[0].anomaly_severity == "critical"
        assert memory[0].expected_value == 400.0

    def test_cpu_far_from_average(self, app_averages_50):
        analysis_input = make_input([uniform_route("/video", 4, fps=55.0, cpu=55.0)], app_averages_50)
        cpu = [a for a in detect_route_anomalies(analysis_input) if a.metric_type == "cpu"]
        assert len(cpu) == 1
        assert cpu[0].anomaly_severity == "critical"
        assert cpu[0].deviation_from_norm == pytest.approx(83.33, abs=0.01)

    def test_healthy_route_has_no_anomalies(self, app_averages_50):
        analysis_input = make_input([uniform_route("/home", 4, fps=55.0)], app_averages_50)
        assert detect_route_anomalies(analysis_input) == []


class TestCompareRoutes:
    def test_over_and_underperforming(self):
        analysis_input = make_input([
            uniform_route("/fast", 12, fps=65.0, memory=300.0),
            uniform_route("/slow", 4, fps=30.0, memory=300.0),
        ])
        comparisons = compare_routes_against_global_performance(analysis_input)

        assert [(c.route_pattern, c.comparison_type) for c in comparisons] == [
            ("/slow", "underperforming"),
            ("/fast", "overperforming"),
        ]
        assert comparisons[0].deviation_percentage == pytest.approx(45.45, abs=0.01)
        assert comparisons[1].confidence == 0.9
        assert comparisons[0].confidence == 0.6

    def test_memory_comparison(self):
        analysis_input = make_input([
            uniform_route("/light", 4, fps=55.0, memory=200.0),
            uniform_route("/heavy", 4, fps=55.0, memory=500.0),
        ])
        comparisons = compare_routes_against_global_performance(analysis_input)
        assert [(c.route_pattern, c.metric_type, c.comparison_type) for c in comparisons] == [
            ("/heavy", "memory", "underperforming"),
            ("/light", "memory", "overperforming"),
        ]


class TestRouteTrends:
    def test_fps_and_memory_trends(self):
        sessions = [
            make_session("/feed", "d1", i * 60, 55.0 - 5 * i, memory, 30.0)
            for i, memory in enumerate([200.0, 210.0, 300.0, 320.0])
        ]
        analysis_input = make_input([make_route("/feed", sessions, performance_trend="degrading")])
        trends = analyze_route_trends(analysis_input)

        assert {(t.metric_type, t.trend_direction) for t in trends} == {("fps", "degrading"), ("memory", "degrading")}
        for trend in trends:
            assert 0.0 <= trend.trend_strength <= 1.0
            assert trend.sessions_analyzed == 4

    def test_short_or_stable_routes_are_skipped(self):
        analysis_input = make_input([
            uniform_route("/a", 2, performance_trend="degrading"),
            uniform_route("/b", 6),
        ])
        assert analyze_route_trends(analysis_input) == []

    @pytest.mark.parametrize("values,expected", [
        ([200, 210, 300, 320], "degrading"),
        ([320, 300, 210, 200], "improving"),
        ([200, 205, 200, 205], "stable"),
        ([200, 300], "stable"),
    ])
    def test_memory_trend_direction(self, values, expected):
        assert memory_trend_direction(values) == expected


def test_identify_problematic_routes(app_averages_50):
    analysis_input = make_input([
        uniform_route("/home", 4, fps=55.0),
        uniform_route("/legacy", 4, fps=55.0, performance_score=55.0),
        uniform_route("/beta", 4, fps=55.0, performance_trend="degrading"),
    ], app_averages_50)
    assert identify_problematic_routes(analysis_input) == ["/legacy", "/beta"]
