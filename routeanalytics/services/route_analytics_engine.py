# services/route_analytics_engine.py
"""
Route Analytics Engine.

``analyze`` maps one immutable AnalysisInput snapshot to an AnalyticsReport:

    1. route correlations        (correlation_analyzer)
    2. performance predictions   (performance_predictor)
    3. navigation flows          (flow_analyzer)
    4. cross-route patterns      (pattern_detector)
    5. ranked insights           (insight_generator)
    6. report assembly           (timing, counts, SLO flag)

Stages 1-4 share the same read-only input and write disjoint collections, so
for large snapshots they run on a thread pool and join before stage 5. The
function performs no I/O and never raises for data reasons.
"""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from routeanalytics.models import AnalysisInput, AnalyticsReport, PerformanceMeta
from routeanalytics.services.correlation_analyzer import analyze_route_correlations
from routeanalytics.services.flow_analyzer import analyze_navigation_flows
from routeanalytics.services.insight_generator import generate_route_insights
from routeanalytics.services.journey_builder import build_session_frame, extract_journeys
from routeanalytics.services.pattern_detector import detect_cross_route_patterns
from routeanalytics.services.performance_predictor import generate_performance_predictions
from routeanalytics.services.route_comparison import (
    compare_routes_against_global_performance,
    detect_route_anomalies,
)
from routeanalytics.utils.config import get_engine_config

logger = logging.getLogger(__name__)

PARALLEL_WORKERS = 4
STAGE_ERRORS = (ArithmeticError, ValueError, TypeError, KeyError)


def analyze(
    analysis_input: Union[AnalysisInput, Mapping[str, Any]],
    options: Optional[Mapping[str, Any]] = None,
) -> AnalyticsReport:
    """
    Run the full route analytics pipeline over one snapshot.

    Args:
        analysis_input: AnalysisInput, or a mapping in the upstream camelCase /
            snake_case layout that validates into one
        options: Optional overrides for the engine tunables (same keys as the
            ``route_analytics`` section of config.yaml)

    Returns:
        A freshly built AnalyticsReport
    """
    started = time.perf_counter()
    if not isinstance(analysis_input, AnalysisInput):
        analysis_input = AnalysisInput.model_validate(analysis_input)
    cfg = get_engine_config(options)

    _check_input_invariants(analysis_input)
    routes = analysis_input.routes
    averages = analysis_input.app_averages
    sessions_processed = sum(route.total_sessions for route in routes)

    journeys = _run_stage(
        "journey extraction",
        lambda: extract_journeys(build_session_frame(analysis_input), cfg["journey_window_minutes"]),
    )

    stages: Dict[str, Callable[[], List[Any]]] = {
        "route_correlations": lambda: analyze_route_correlations(routes, averages, cfg),
        "performance_predictions": lambda: generate_performance_predictions(routes, averages, cfg),
        "navigation_flows": lambda: analyze_navigation_flows(journeys, cfg),
        "cross_route_patterns": lambda: detect_cross_route_patterns(journeys, cfg),
    }
    if sessions_processed >= cfg["parallel_session_threshold"]:
        with ThreadPoolExecutor(max_workers=PARALLEL_WORKERS) as executor:
            futures = {name: executor.submit(_run_stage, name, stage) for name, stage in stages.items()}
            results = {name: future.result() for name, future in futures.items()}
    else:
        results = {name: _run_stage(name, stage) for name, stage in stages.items()}

    insights = _run_stage(
        "insights",
        lambda: generate_route_insights(
            results["route_correlations"],
            results["performance_predictions"],
            results["navigation_flows"],
            results["cross_route_patterns"],
            {route.route_pattern: route.route_name for route in routes if route.route_name},
        ),
    )
    anomalies = _run_stage("route anomalies", lambda: detect_route_anomalies(analysis_input, cfg))
    comparisons = _run_stage("route comparisons", lambda: compare_routes_against_global_performance(analysis_input, cfg))

    routes_analyzed = count_routes_analyzed(analysis_input, results)
    processing_time_ms = (time.perf_counter() - started) * 1000.0
    meets_target = meets_performance_target(processing_time_ms, sessions_processed, cfg)

    report = AnalyticsReport(
        id=str(uuid.uuid4()),
        generated_at=datetime.now(timezone.utc).isoformat(),
        processing_time_ms=processing_time_ms,
        route_correlations=results["route_correlations"],
        performance_predictions=results["performance_predictions"],
        navigation_flows=results["navigation_flows"],
        cross_route_patterns=results["cross_route_patterns"],
        insights=insights,
        performance_meta=PerformanceMeta(
            sessions_processed=sessions_processed,
            routes_analyzed=routes_analyzed,
            meets_performance_target=meets_target,
        ),
        route_anomalies=anomalies,
        route_comparisons=comparisons,
    )

    logger.info(
        "Route analytics: %d sessions, %d/%d routes analyzed, %d correlations, %d predictions, "
        "%d flows, %d patterns, %d insights in %.1f ms (target met: %s)",
        sessions_processed, routes_analyzed, len(routes),
        len(report.route_correlations), len(report.performance_predictions),
        len(report.navigation_flows), len(report.cross_route_patterns),
        len(report.insights), processing_time_ms, meets_target,
    )
    return report


def meets_performance_target(processing_time_ms: float, sessions_processed: int, cfg: Mapping[str, Any]) -> bool:
    """The latency target only binds at or above ``performance_target_sessions``."""
    if sessions_processed < cfg["performance_target_sessions"]:
        return True
    return processing_time_ms < cfg["performance_target_ms"]


def count_routes_analyzed(analysis_input: AnalysisInput, results: Mapping[str, List[Any]]) -> int:
    """Number of input routes referenced by at least one correlation, prediction, flow or pattern."""
    referenced = set()
    for record in results.get("route_correlations", []):
        referenced.update((record.source_route, record.target_route))
    for record in results.get("performance_predictions", []):
        referenced.add(record.route_pattern)
    for flow in results.get("navigation_flows", []):
        referenced.update(flow.route_sequence)
    for pattern in results.get("cross_route_patterns", []):
        referenced.update(pattern.affected_routes)
    return sum(1 for route in analysis_input.routes if route.route_pattern in referenced)


# -----------------------------------------------
# Helpers
# -----------------------------------------------
def _run_stage(name: str, stage: Callable[[], List[Any]]) -> List[Any]:
    """Run one stage; a stage-wide fault degrades to an empty collection."""
    try:
        return stage()
    except STAGE_ERRORS as e:
        logger.warning("Stage '%s' failed and was skipped: %s", name, e)
        return []


def _check_input_invariants(analysis_input: AnalysisInput) -> None:
    for route in analysis_input.routes:
        if route.total_sessions != len(route.sessions):
            logger.warning(
                "Route '%s' reports %d sessions but carries %d; using the session list",
                route.route_pattern, route.total_sessions, len(route.sessions),
            )
        if route.unique_devices > route.total_sessions:
            logger.warning(
                "Route '%s' reports %d unique devices for %d sessions",
                route.route_pattern, route.unique_devices, route.total_sessions,
            )
