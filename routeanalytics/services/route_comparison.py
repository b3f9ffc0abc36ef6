# services/route_comparison.py
"""
Route-vs-target analyses: anomalies, comparisons against performance targets,
per-metric trends and the problematic-route shortlist.
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np

from routeanalytics.models import (
    AnalysisInput,
    RouteAggregate,
    RouteAnomaly,
    RouteComparison,
    RouteTrend,
)
from routeanalytics.services.correlation_analyzer import (
    correlate_route_with_global,
    route_display_name,
    sample_confidence,
)
from routeanalytics.services.journey_builder import chronological_sessions
from routeanalytics.utils.config import ENGINE_DEFAULTS
from routeanalytics.utils.statistical_analyzer import normalized_trend_strength, percentage_deviation

logger = logging.getLogger(__name__)

SEVERITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}
SIGNIFICANCE_RANK = {"high": 0, "medium": 1, "low": 2}

ANOMALY_DEVIATION_PCT = 35.0
FPS_COMPARISON_PCT = 15.0
MEMORY_COMPARISON_PCT = 20.0
MIN_TREND_SESSIONS = 3


def _name(route: RouteAggregate) -> str:
    return route.route_name or route_display_name(route.route_pattern)


# -----------------------------------------------
# Anomalies
# -----------------------------------------------
def detect_route_anomalies(analysis_input: AnalysisInput, cfg: Optional[Dict[str, Any]] = None) -> List[RouteAnomaly]:
    """
    Flag fps, memory and cpu anomalies per route.

    Sorted by severity (critical first), then |deviation_from_norm| descending.
    """
    cfg = cfg or ENGINE_DEFAULTS
    averages = analysis_input.app_averages
    anomalies: List[RouteAnomaly] = []

    for route in analysis_input.routes:
        try:
            anomalies.extend(_route_anomalies(route, averages, cfg))
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning("Anomaly detection skipped for route '%s': %s", route.route_pattern, e)

    anomalies.sort(key=lambda a: (SEVERITY_RANK[a.anomaly_severity], -abs(a.deviation_from_norm), a.route_pattern))
    return anomalies


def _route_anomalies(route: RouteAggregate, averages, cfg: Dict[str, Any]) -> List[RouteAnomaly]:
    found = []
    common = {
        "route_pattern": route.route_pattern,
        "route_name": _name(route),
        "sessions_count": route.total_sessions,
        "unique_devices": route.unique_devices,
    }

    # FPS: below the target floor, or far below the app average
    expected_fps = averages.avg_fps or cfg["fps_target_optimal"]
    fps_deviation = percentage_deviation(route.avg_fps, expected_fps)
    if route.avg_fps < cfg["fps_target_min"] or fps_deviation < -ANOMALY_DEVIATION_PCT:
        if route.avg_fps < 20:
            severity = "critical"
        elif route.avg_fps < 30 or abs(fps_deviation) > 50:
            severity = "high"
        else:
            severity = "medium"
        found.append(RouteAnomaly(
            metric_type="fps",
            anomaly_severity=severity,
            deviation_from_norm=fps_deviation,
            current_value=route.avg_fps,
            expected_value=expected_fps,
            **common,
        ))

    # Memory: above the warning pressure level
    warning = cfg["memory_warning_mb"]
    if route.avg_memory > warning:
        if route.avg_memory > cfg["memory_critical_mb"]:
            severity = "critical"
        elif route.avg_memory > (warning + cfg["memory_critical_mb"]) / 2.0:
            severity = "high"
        else:
            severity = "medium"
        found.append(RouteAnomaly(
            metric_type="memory",
            anomaly_severity=severity,
            deviation_from_norm=percentage_deviation(route.avg_memory, warning),
            current_value=route.avg_memory,
            expected_value=warning,
            **common,
        ))

    # CPU: far from the app average in either direction
    cpu_deviation = percentage_deviation(route.avg_cpu, averages.avg_cpu)
    if abs(cpu_deviation) > ANOMALY_DEVIATION_PCT:
        if abs(cpu_deviation) > 70:
            severity = "critical"
        elif abs(cpu_deviation) > 50:
            severity = "high"
        else:
            severity = "medium"
        found.append(RouteAnomaly(
            metric_type="cpu",
            anomaly_severity=severity,
            deviation_from_norm=cpu_deviation,
            current_value=route.avg_cpu,
            expected_value=averages.avg_cpu,
            **common,
        ))
    return found


# -----------------------------------------------
# Comparisons against performance targets
# -----------------------------------------------
def compare_routes_against_global_performance(
    analysis_input: AnalysisInput, cfg: Optional[Dict[str, Any]] = None
) -> List[RouteComparison]:
    """Classify routes as over/underperforming on fps and memory; sorted by deviation_percentage descending."""
    cfg = cfg or ENGINE_DEFAULTS
    fps_target = cfg["fps_target_optimal"]
    memory_target = cfg["memory_optimal_mb"]
    comparisons: List[RouteComparison] = []

    for route in analysis_input.routes:
        confidence = sample_confidence(route.total_sessions, cfg["high_confidence_sessions"])

        fps_deviation = percentage_deviation(route.avg_fps, fps_target)
        if abs(fps_deviation) > FPS_COMPARISON_PCT:
            comparisons.append(RouteComparison(
                route_pattern=route.route_pattern,
                route_name=_name(route),
                comparison_type="overperforming" if route.avg_fps >= fps_target else "underperforming",
                deviation_percentage=abs(fps_deviation),
                metric_type="fps",
                sessions_count=route.total_sessions,
                confidence=confidence,
            ))

        memory_deviation = percentage_deviation(route.avg_memory, memory_target)
        if abs(memory_deviation) > MEMORY_COMPARISON_PCT or route.avg_memory > cfg["memory_warning_mb"]:
            comparisons.append(RouteComparison(
                route_pattern=route.route_pattern,
                route_name=_name(route),
                # Lower memory is better
                comparison_type="overperforming" if route.avg_memory <= memory_target else "underperforming",
                deviation_percentage=abs(memory_deviation),
                metric_type="memory",
                sessions_count=route.total_sessions,
                confidence=confidence,
            ))

    comparisons.sort(key=lambda c: (-c.deviation_percentage, c.route_pattern, c.metric_type))
    return comparisons


# -----------------------------------------------
# Trends
# -----------------------------------------------
def analyze_route_trends(analysis_input: AnalysisInput) -> List[RouteTrend]:
    """Per-route fps and memory trends, most significant first."""
    trends: List[RouteTrend] = []

    for route in analysis_input.routes:
        if route.total_sessions < MIN_TREND_SESSIONS or len(route.sessions) < MIN_TREND_SESSIONS:
            continue
        try:
            trends.extend(_route_trends(route))
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning("Trend analysis skipped for route '%s': %s", route.route_pattern, e)

    trends.sort(key=lambda t: (SIGNIFICANCE_RANK[t.trend_significance], -t.trend_strength, t.route_pattern, t.metric_type))
    return trends


def _route_trends(route: RouteAggregate) -> List[RouteTrend]:
    sessions = chronological_sessions(route)
    trends: List[RouteTrend] = []

    if route.performance_trend != "stable":
        strength = normalized_trend_strength([s.avg_fps for s in sessions])
        trends.append(RouteTrend(
            route_pattern=route.route_pattern,
            route_name=_name(route),
            trend_direction=route.performance_trend,
            trend_significance=trend_significance(strength, route.total_sessions),
            metric_type="fps",
            trend_strength=strength,
            sessions_analyzed=route.total_sessions,
        ))

    memory = [s.avg_memory for s in sessions]
    direction = memory_trend_direction(memory)
    if direction != "stable":
        strength = normalized_trend_strength(memory)
        trends.append(RouteTrend(
            route_pattern=route.route_pattern,
            route_name=_name(route),
            trend_direction=direction,
            trend_significance=trend_significance(strength, route.total_sessions),
            metric_type="memory",
            trend_strength=strength,
            sessions_analyzed=route.total_sessions,
        ))

    return trends


def trend_significance(strength: float, sessions: int) -> str:
    adjusted = strength * (min(sessions, 20) / 20.0)
    if adjusted > 0.6:
        return "high"
    elif adjusted > 0.3:
        return "medium"
    return "low"


def memory_trend_direction(values: List[float]) -> str:
    """Compare first-half and second-half means; rising memory is degrading."""
    if len(values) < 3:
        return "stable"
    half = len(values) // 2
    first = float(np.mean(values[:half]))
    second = float(np.mean(values[half:]))
    if first == 0:
        return "stable"
    change = (second - first) / first
    if change > 0.1:
        return "degrading"
    elif change < -0.1:
        return "improving"
    return "stable"


# -----------------------------------------------
# Problematic routes
# -----------------------------------------------
def identify_problematic_routes(analysis_input: AnalysisInput) -> List[str]:
    problematic = []
    for route in analysis_input.routes:
        deviation = correlate_route_with_global(route, analysis_input.app_averages)
        if (
            route.performance_score < 60
            or route.risk_level == "high"
            or route.performance_trend == "degrading"
            or deviation.risk_assessment == "high"
        ):
            problematic.append(route.route_pattern)
    return problematic
