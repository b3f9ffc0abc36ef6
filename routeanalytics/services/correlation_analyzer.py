# services/correlation_analyzer.py
"""
Route Correlation Analyzer.

Compares each route's aggregate metrics against the app-wide averages and
against every other route, and emits a CorrelationRecord only when the
resulting correlation strength clears ``correlation_threshold``. Routes within
normal variance produce no record.
"""

import logging
from itertools import combinations
from typing import Any, Dict, List, Optional, Tuple

from routeanalytics.models import (
    GLOBAL_AVERAGE_TARGET,
    AppAverages,
    CorrelationRecord,
    RouteAggregate,
    RouteDeviation,
)
from routeanalytics.services.journey_builder import chronological_sessions
from routeanalytics.utils.statistical_analyzer import (
    anomaly_score,
    clamp,
    mean_difference_significance,
    pearson_correlation_test,
    percentage_deviation,
)

logger = logging.getLogger(__name__)

# Below this net deviation (in %) a route-vs-global record is neutral
NEUTRAL_IMPACT_PCT = 5.0
# Below this |r| a route-pair record is neutral
NEUTRAL_IMPACT_CORRELATION = 0.2
# Floor for significance values so emitted records stay within (0, 1]
MIN_SIGNIFICANCE = 1e-3
PAIR_METRICS = ("fps", "memory", "cpu")


def correlate_route_with_global(
    route: RouteAggregate, app_averages: AppAverages, high_confidence_sessions: int = 10
) -> RouteDeviation:
    """Measure a route's fps / memory / cpu against the app-wide averages."""
    fps_deviation = percentage_deviation(route.avg_fps, app_averages.avg_fps)
    memory_deviation = percentage_deviation(route.avg_memory, app_averages.avg_memory)
    cpu_deviation = percentage_deviation(route.avg_cpu, app_averages.avg_cpu)

    score = anomaly_score(fps_deviation, memory_deviation, cpu_deviation)

    if score > 0.7 or route.performance_score < 50:
        risk = "high"
    elif score > 0.4 or route.performance_score < 70:
        risk = "medium"
    else:
        risk = "low"

    return RouteDeviation(
        route_pattern=route.route_pattern,
        route_name=route.route_name or route_display_name(route.route_pattern),
        fps_deviation=fps_deviation,
        memory_deviation=memory_deviation,
        cpu_deviation=cpu_deviation,
        trend_direction=route.performance_trend,
        trend_confidence=sample_confidence(route.total_sessions, high_confidence_sessions),
        sessions_analyzed=route.total_sessions,
        anomaly_score=score,
        risk_assessment=risk,
    )


def analyze_route_correlations(
    routes: List[RouteAggregate], app_averages: AppAverages, cfg: Dict[str, Any]
) -> List[CorrelationRecord]:
    """
    Emit route-vs-global and route-vs-route correlation records.

    Sorted by correlation_strength descending, then source and target route.
    """
    threshold = cfg["correlation_threshold"]
    records: List[CorrelationRecord] = []

    for route in routes:
        try:
            record = _global_correlation(route, app_averages, cfg)
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning("Global correlation skipped for route '%s': %s", route.route_pattern, e)
            continue
        if record is not None and record.correlation_strength > threshold:
            records.append(record)

    series: Dict[str, Dict[str, List[float]]] = {}
    for route in routes:
        try:
            series[route.route_pattern] = _chronological_metrics(route)
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning("Route '%s' left out of route-pair correlations: %s", route.route_pattern, e)

    paired = [route for route in routes if route.route_pattern in series]
    for source, target in combinations(paired, 2):
        try:
            record = _pair_correlation(source, target, series, cfg)
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning(
                "Route correlation skipped for '%s' -> '%s': %s",
                source.route_pattern, target.route_pattern, e,
            )
            continue
        if record is not None and record.correlation_strength > threshold:
            records.append(record)

    records.sort(key=lambda r: (-r.correlation_strength, r.source_route, r.target_route))
    return records


# -----------------------------------------------
# Route vs. global average
# -----------------------------------------------
def _global_correlation(
    route: RouteAggregate, app_averages: AppAverages, cfg: Dict[str, Any]
) -> Optional[CorrelationRecord]:
    deviation = correlate_route_with_global(route, app_averages, cfg["high_confidence_sessions"])
    strength = deviation.anomaly_score
    if strength <= 0:
        return None

    correlation_type, metric = _dominant_global_signal(deviation)
    reference = {
        "fps": app_averages.avg_fps,
        "memory": app_averages.avg_memory,
        "cpu": app_averages.avg_cpu,
    }[metric]
    values = [getattr(s, f"avg_{metric}") for s in route.sessions]
    significance = mean_difference_significance(values, reference) if reference else 0.0
    if significance <= 0:
        # Too few sessions for a t-test; fall back to the deviation magnitude
        significance = strength

    net = (deviation.fps_deviation - deviation.memory_deviation - deviation.cpu_deviation) / 3.0
    if abs(net) < NEUTRAL_IMPACT_PCT:
        impact = "neutral"
    else:
        impact = "positive" if net > 0 else "negative"

    return CorrelationRecord(
        source_route=route.route_pattern,
        target_route=GLOBAL_AVERAGE_TARGET,
        correlation_strength=clamp(strength, 0.0, 1.0),
        performance_impact=impact,
        correlation_type=correlation_type,
        confidence_level=deviation.trend_confidence,
        statistical_significance=clamp(significance, MIN_SIGNIFICANCE, 1.0),
        sample_size=route.total_sessions,
    )


def _dominant_global_signal(deviation: RouteDeviation) -> Tuple[str, str]:
    """Pick the metric that hurts the route most relative to the app average."""
    harm = {
        "fps": -deviation.fps_deviation,
        "memory": deviation.memory_deviation,
        "cpu": deviation.cpu_deviation,
    }
    metric = max(harm, key=lambda m: harm[m])
    if harm[metric] <= 0:
        # Better than average on every metric; report the largest gain
        gains = {m: -v for m, v in harm.items()}
        return "performance_boost", max(gains, key=lambda m: gains[m])
    return {
        "fps": "fps_degradation",
        "memory": "memory_leak",
        "cpu": "cpu_spike",
    }[metric], metric


# -----------------------------------------------
# Route vs. route
# -----------------------------------------------
def _chronological_metrics(route: RouteAggregate) -> Dict[str, List[float]]:
    sessions = chronological_sessions(route)
    return {
        "fps": [s.avg_fps for s in sessions],
        "memory": [s.avg_memory for s in sessions],
        "cpu": [s.avg_cpu for s in sessions],
    }


def _pair_correlation(
    source: RouteAggregate,
    target: RouteAggregate,
    series: Dict[str, Dict[str, List[float]]],
    cfg: Dict[str, Any],
) -> Optional[CorrelationRecord]:
    src = series[source.route_pattern]
    tgt = series[target.route_pattern]
    n = min(len(src["fps"]), len(tgt["fps"]))
    if n < cfg["min_pair_samples"]:
        return None

    tests = {metric: pearson_correlation_test(src[metric], tgt[metric]) for metric in PAIR_METRICS}
    fps_corr, memory_corr, cpu_corr = (tests[metric][0] for metric in PAIR_METRICS)
    overall = (fps_corr + memory_corr + cpu_corr) / 3.0
    strength = abs(overall)
    if strength <= 0:
        return None

    # Significance of the metric pair carrying the strongest signal
    _, significance = max(tests.values(), key=lambda test: abs(test[0]))

    return CorrelationRecord(
        source_route=source.route_pattern,
        target_route=target.route_pattern,
        correlation_strength=clamp(strength, 0.0, 1.0),
        performance_impact=_pair_impact(source, target, overall),
        correlation_type=_pair_correlation_type(source, target, fps_corr, memory_corr, cpu_corr),
        confidence_level=sample_confidence(
            min(source.total_sessions, target.total_sessions), cfg["high_confidence_sessions"]
        ),
        statistical_significance=clamp(significance, MIN_SIGNIFICANCE, 1.0),
        sample_size=n,
    )


def _pair_correlation_type(
    source: RouteAggregate, target: RouteAggregate, fps_corr: float, memory_corr: float, cpu_corr: float
) -> str:
    if memory_corr > 0.5 and source.avg_memory > target.avg_memory:
        return "memory_leak"
    if cpu_corr > 0.5 and source.avg_cpu > target.avg_cpu:
        return "cpu_spike"
    if fps_corr < -0.3 or (source.avg_fps < 40 and target.avg_fps < 40):
        return "fps_degradation"
    return "performance_boost"


def _pair_impact(source: RouteAggregate, target: RouteAggregate, correlation: float) -> str:
    if abs(correlation) < NEUTRAL_IMPACT_CORRELATION:
        return "neutral"
    source_better = source.performance_score > target.performance_score
    if correlation > 0:
        return "positive" if source_better else "negative"
    return "negative" if source_better else "positive"


# -----------------------------------------------
# Shared helpers
# -----------------------------------------------
def sample_confidence(sessions: int, high_confidence_sessions: int = 10) -> float:
    """0.9 with enough sessions, 0.6 otherwise."""
    return 0.9 if sessions >= high_confidence_sessions else 0.6


def route_display_name(route_pattern: str) -> str:
    """Last path segment of a route pattern, or the pattern itself for the root."""
    tail = route_pattern.rstrip("/").split("/")[-1]
    return tail or route_pattern
