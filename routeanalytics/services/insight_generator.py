# services/insight_generator.py
"""
Insight Generator.

Turns every correlation, prediction, flow and pattern record into an Insight
with an actionable recommendation. Nothing is dropped or de-duplicated here.
"""

import logging
from typing import List, Mapping, Optional

from routeanalytics.models import (
    GLOBAL_AVERAGE_TARGET,
    CorrelationInsight,
    CorrelationRecord,
    CrossRoutePattern,
    FlowInsight,
    Insight,
    NavigationFlow,
    PatternInsight,
    PredictionInsight,
    PredictionRecord,
)
from routeanalytics.services.correlation_analyzer import route_display_name

logger = logging.getLogger(__name__)

INSIGHT_TYPE_ORDER = {
    "correlation": 0,
    "prediction": 1,
    "flow_analysis": 2,
    "pattern_detection": 3,
}

MAX_FLOW_CONFIDENCE = 0.95


def generate_route_insights(
    correlations: List[CorrelationRecord],
    predictions: List[PredictionRecord],
    flows: List[NavigationFlow],
    patterns: List[CrossRoutePattern],
    route_names: Optional[Mapping[str, str]] = None,
) -> List[Insight]:
    """
    Flatten all stage outputs into one insight list.

    Sorted by confidence descending; ties fall back to insight_type
    (correlation, prediction, flow_analysis, pattern_detection) and then
    route_pattern ascending. ``route_names`` maps route patterns to the
    upstream route names; patterns without one use their last path segment.
    """
    names = route_names or {}
    insights: List[Insight] = []
    insights.extend(_correlation_insight(c, names) for c in correlations)
    insights.extend(_prediction_insight(p, names) for p in predictions)
    insights.extend(_flow_insight(f) for f in flows)
    insights.extend(_pattern_insight(p) for p in patterns)

    insights.sort(key=lambda i: (-i.confidence, INSIGHT_TYPE_ORDER[i.insight_type], i.route_pattern))
    return insights


# -----------------------------------------------
# Per-record builders
# -----------------------------------------------
def _route_name(route_pattern: str, names: Mapping[str, str]) -> str:
    return names.get(route_pattern) or route_display_name(route_pattern)


def _correlation_insight(correlation: CorrelationRecord, names: Mapping[str, str]) -> CorrelationInsight:
    if correlation.performance_impact == "negative":
        impact = "high"
    elif correlation.performance_impact == "positive":
        impact = "medium"
    else:
        impact = "low"
    return CorrelationInsight(
        route_pattern=correlation.source_route,
        route_name=_route_name(correlation.source_route, names),
        insight_data=correlation,
        confidence=correlation.confidence_level,
        impact_assessment=impact,
        actionable_recommendation=correlation_recommendation(correlation),
    )


def _prediction_insight(prediction: PredictionRecord, names: Mapping[str, str]) -> PredictionInsight:
    return PredictionInsight(
        route_pattern=prediction.route_pattern,
        route_name=_route_name(prediction.route_pattern, names),
        insight_data=prediction,
        confidence=prediction.forecast_accuracy,
        impact_assessment=prediction.recommendation_priority,
        actionable_recommendation=prediction_recommendation(prediction),
    )


def _flow_insight(flow: NavigationFlow) -> FlowInsight:
    if flow.user_impact_score > 50:
        impact = "high"
    elif flow.user_impact_score > 10:
        impact = "medium"
    else:
        impact = "low"
    return FlowInsight(
        route_pattern=" -> ".join(flow.route_sequence),
        route_name=f"Flow: {len(flow.route_sequence)} routes",
        insight_data=flow,
        confidence=min(MAX_FLOW_CONFIDENCE, 0.5 + 0.05 * flow.flow_frequency),
        impact_assessment=impact,
        actionable_recommendation=flow_recommendation(flow),
    )


def _pattern_insight(pattern: CrossRoutePattern) -> PatternInsight:
    if pattern.pattern_strength > 0.7:
        impact = "high"
    elif pattern.pattern_strength > 0.4:
        impact = "medium"
    else:
        impact = "low"
    return PatternInsight(
        route_pattern=", ".join(pattern.affected_routes),
        route_name=f"Pattern: {pattern.pattern_type}",
        insight_data=pattern,
        confidence=pattern.detection_confidence,
        impact_assessment=impact,
        actionable_recommendation=pattern_recommendation(pattern),
    )


# -----------------------------------------------
# Recommendation text
# -----------------------------------------------
def correlation_recommendation(correlation: CorrelationRecord) -> str:
    source, target = correlation.source_route, correlation.target_route
    if correlation.correlation_type == "memory_leak":
        if target == GLOBAL_AVERAGE_TARGET:
            return f"Route {source} uses more memory than the app average. Consider implementing memory cleanup mechanisms."
        return (
            f"Address potential memory leak pattern between {source} and {target}. "
            "Consider implementing memory cleanup mechanisms."
        )
    if correlation.correlation_type == "cpu_spike":
        return "Optimize CPU usage correlation between routes. Consider load balancing or performance optimization strategies."
    if correlation.correlation_type == "fps_degradation":
        return "Investigate FPS degradation pattern. Focus on rendering optimizations and frame rate stability."
    return f"Leverage positive performance correlation. Apply successful strategies from {source} to other routes."


def prediction_recommendation(prediction: PredictionRecord) -> str:
    if prediction.recommendation_priority == "high":
        return (
            f"High priority: Route {prediction.route_pattern} predicted to have performance score "
            f"{prediction.predicted_performance_score:.1f} in {prediction.prediction_horizon}. "
            "Immediate attention required."
        )
    if prediction.trend_direction == "degrading":
        return "Monitor route performance trend. Consider proactive optimization before performance degrades further."
    return "Route showing stable performance. Continue monitoring and maintain current optimization strategies."


def flow_recommendation(flow: NavigationFlow) -> str:
    if flow.bottleneck_routes:
        return (
            f"Optimize bottleneck routes: {', '.join(flow.bottleneck_routes)}. "
            "Focus on these routes to improve overall navigation flow performance."
        )
    return (
        "Navigation flow performing well. Monitor for any performance degradation in the route sequence: "
        f"{' -> '.join(flow.route_sequence)}."
    )


def pattern_recommendation(pattern: CrossRoutePattern) -> str:
    if pattern.suggested_mitigation:
        return pattern.suggested_mitigation[0]
    return f"Address {pattern.pattern_type} pattern affecting {len(pattern.affected_routes)} routes."
