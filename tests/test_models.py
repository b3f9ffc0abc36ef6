"""Tests for models.py."""

import pytest
from pydantic import ValidationError

from routeanalytics.models import (
    AnalysisInput,
    AnalyticsReport,
    CorrelationInsight,
    CorrelationRecord,
    NavigationFlow,
    PatternInsight,
)


class TestInputModels:
    def test_camel_case_keys(self):
        analysis_input = AnalysisInput.model_validate({
            "routes": [{
                "routePattern": "/orders/:id",
                "totalSessions": 1,
                "avgFps": 48.0,
                "performanceTrend": "degrading",
                "sessions": [{
                    "sessionId": "s1",
                    "deviceId": "d1",
                    "routePattern": "/orders/:id",
                    "fpsMetrics": [47, 49],
                    "memoryMetrics": [300],
                    "screenDuration": 1500,
                    "timestamp": "2024-03-01T09:00:00Z",
                }],
            }],
            "appAverages": {"avgFps": 52.0},
        })
        route = analysis_input.routes[0]
        assert route.route_pattern == "/orders/:id"
        assert route.performance_trend == "degrading"
        assert route.sessions[0].fps_samples == [47.0, 49.0]
        assert route.sessions[0].duration_ms == 1500.0
        assert analysis_input.app_averages.avg_fps == 52.0
        assert analysis_input.app_averages.avg_cpu == 0.0

    def test_snake_case_keys(self):
        analysis_input = AnalysisInput.model_validate({
            "routes": [{"route_pattern": "/home", "avg_fps": 55}],
            "app_averages": {"avg_fps": 55},
        })
        assert analysis_input.routes[0].avg_fps == 55.0

    def test_snapshot_is_immutable(self):
        analysis_input = AnalysisInput()
        with pytest.raises(ValidationError):
            analysis_input.routes = []

    def test_unknown_trend_rejected(self):
        with pytest.raises(ValidationError):
            AnalysisInput.model_validate({"routes": [{"routePattern": "/a", "performanceTrend": "sideways"}]})


class TestOutputModels:
    def test_strength_must_be_positive(self):
        with pytest.raises(ValidationError):
            CorrelationRecord(
                source_route="/a", target_route="/b", correlation_strength=0.0,
                performance_impact="neutral", correlation_type="performance_boost",
                confidence_level=0.6, statistical_significance=0.5, sample_size=3,
            )

    def test_flow_needs_two_routes(self):
        with pytest.raises(ValidationError):
            NavigationFlow(
                route_sequence=["/a"], flow_frequency=2, optimization_potential=0.0,
                user_impact_score=0.0, avg_transition_time=0.0,
            )

    def test_insights_parse_by_type(self):
        report = AnalyticsReport.model_validate({
            "id": "r1",
            "generated_at": "2024-03-01T09:00:00+00:00",
            "processing_time_ms": 1.0,
            "performance_meta": {"sessions_processed": 0, "routes_analyzed": 0, "meets_performance_target": True},
            "insights": [
                {
                    "insight_type": "pattern_detection",
                    "route_pattern": "/a, /b",
                    "route_name": "Pattern: memory_leak_chain",
                    "confidence": 0.8,
                    "impact_assessment": "high",
                    "actionable_recommendation": "Profile memory",
                    "insight_data": {
                        "pattern_type": "memory_leak_chain",
                        "affected_routes": ["/a", "/b"],
                        "pattern_strength": 0.9,
                        "detection_confidence": 0.8,
                    },
                },
                {
                    "insight_type": "correlation",
                    "route_pattern": "/a",
                    "route_name": "a",
                    "confidence": 0.6,
                    "impact_assessment": "low",
                    "actionable_recommendation": "Monitor",
                    "insight_data": {
                        "source_route": "/a",
                        "target_route": "global_average",
                        "correlation_strength": 0.4,
                        "performance_impact": "neutral",
                        "correlation_type": "performance_boost",
                        "confidence_level": 0.6,
                        "statistical_significance": 0.4,
                        "sample_size": 3,
                    },
                },
            ],
        })
        assert isinstance(report.insights[0], PatternInsight)
        assert isinstance(report.insights[1], CorrelationInsight)
        assert report.route_anomalies == []
