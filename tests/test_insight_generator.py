"""Tests for services/insight_generator.py."""

from routeanalytics.models import (
    CorrelationRecord,
    CrossRoutePattern,
    DegradationPoint,
    NavigationFlow,
    PredictionRecord,
)
from routeanalytics.services.insight_generator import generate_route_insights


def _correlation(confidence=0.9, impact="negative"):
    return CorrelationRecord(
        source_route="/reports/:id",
        target_route="global_average",
        correlation_strength=0.8,
        performance_impact=impact,
        correlation_type="memory_leak",
        confidence_level=confidence,
        statistical_significance=0.99,
        sample_size=12,
    )


def _prediction(accuracy=0.9, priority="high", trend="degrading"):
    return PredictionRecord(
        route_pattern="/checkout",
        predicted_performance_score=25.56,
        confidence_interval=(20.0, 31.0),
        prediction_horizon="7d",
        trend_direction=trend,
        forecast_accuracy=accuracy,
        contributing_factors=["fps declining"],
        recommendation_priority=priority,
    )


def _flow(frequency=2, bottlenecks=("/cart",)):
    return NavigationFlow(
        route_sequence=["/cart", "/checkout", "/checkout/confirm"],
        flow_frequency=frequency,
        bottleneck_routes=list(bottlenecks),
        performance_degradation_points=[
            DegradationPoint(from_route="/cart", to_route="/checkout", performance_drop=30.0, severity="high"),
        ],
        optimization_potential=50.0,
        user_impact_score=60.0,
        avg_transition_time=90_000.0,
    )


def _pattern(confidence=1.0):
    return CrossRoutePattern(
        pattern_type="memory_leak_chain",
        affected_routes=["/feed", "/feed/:id"],
        pattern_strength=0.8,
        detection_confidence=confidence,
        suggested_mitigation=["Implement memory profiling for these routes"],
    )


class TestGenerateRouteInsights:
    def test_every_record_becomes_an_insight(self):
        insights = generate_route_insights([_correlation()], [_prediction()], [_flow()], [_pattern()])
        assert len(insights) == 4
        assert {i.insight_type for i in insights} == {"correlation", "prediction", "flow_analysis", "pattern_detection"}

    def test_sorted_by_confidence_with_type_tie_break(self):
        insights = generate_route_insights(
            [_correlation(confidence=0.9)], [_prediction(accuracy=0.9)], [_flow(frequency=2)], [_pattern(confidence=1.0)]
        )
        assert [i.insight_type for i in insights] == ["pattern_detection", "correlation", "prediction", "flow_analysis"]
        confidences = [i.confidence for i in insights]
        assert confidences == sorted(confidences, reverse=True)

    def test_payload_is_the_originating_record(self):
        correlation = _correlation()
        insight = generate_route_insights([correlation], [], [], [])[0]
        assert insight.insight_data == correlation
        assert insight.route_pattern == "/reports/:id"
        assert insight.route_name == ":id"
        assert insight.impact_assessment == "high"

    def test_no_records_no_insights(self):
        assert generate_route_insights([], [], [], []) == []


class TestRecommendations:
    def test_high_priority_prediction(self):
        insight = generate_route_insights([], [_prediction()], [], [])[0]
        assert insight.actionable_recommendation == (
            "High priority: Route /checkout predicted to have performance score 25.6 in 7d. "
            "Immediate attention required."
        )
        assert insight.impact_assessment == "high"

    def test_degrading_prediction(self):
        insight = generate_route_insights([], [_prediction(priority="medium")], [], [])[0]
        assert insight.actionable_recommendation.startswith("Monitor route performance trend")

    def test_flow_with_bottlenecks(self):
        insight = generate_route_insights([], [], [_flow()], [])[0]
        assert insight.route_pattern == "/cart -> /checkout -> /checkout/confirm"
        assert insight.route_name == "Flow: 3 routes"
        assert insight.actionable_recommendation.startswith("Optimize bottleneck routes: /cart.")
        assert insight.confidence == 0.6
        assert insight.impact_assessment == "high"

    def test_flow_without_bottlenecks(self):
        insight = generate_route_insights([], [], [_flow(bottlenecks=())], [])[0]
        assert insight.actionable_recommendation.startswith("Navigation flow performing well.")

    def test_pattern_uses_first_mitigation(self):
        insight = generate_route_insights([], [], [], [_pattern()])[0]
        assert insight.actionable_recommendation == "Implement memory profiling for these routes"
        assert insight.route_name == "Pattern: memory_leak_chain"
        assert insight.route_pattern == "/feed, /feed/:id"

    def test_upstream_route_names_are_kept(self):
        insights = generate_route_insights(
            [_correlation()], [_prediction()], [], [], {"/reports/:id": "Report Detail"}
        )
        names = {i.insight_type: i.route_name for i in insights}
        assert names == {"correlation": "Report Detail", "prediction": "checkout"}
