# services/flow_analyzer.py
"""
Navigation Flow Analyzer.

Groups journeys by their exact route sequence and, for every sequence seen at
least ``min_flow_frequency`` times, locates the hops where the average session
score drops and the routes that precede those drops in most journeys.
"""

import logging
import numpy as np
from collections import OrderedDict
from typing import Any, Dict, List, Tuple

from routeanalytics.models import DegradationPoint, NavigationFlow
from routeanalytics.utils.statistical_analyzer import clamp, classify_severity, finite_or

logger = logging.getLogger(__name__)


def analyze_navigation_flows(journeys: List[Dict[str, Any]], cfg: Dict[str, Any]) -> List[NavigationFlow]:
    """
    Build one NavigationFlow per recurring route sequence.

    Sorted by user_impact_score descending, then flow_frequency descending,
    then the sequence itself.
    """
    groups: "OrderedDict[Tuple[str, ...], List[Dict[str, Any]]]" = OrderedDict()
    for journey in journeys:
        groups.setdefault(journey["routes"], []).append(journey)

    flows = []
    for sequence, members in groups.items():
        if len(members) < cfg["min_flow_frequency"]:
            continue
        try:
            flows.append(analyze_flow_pattern(sequence, members, cfg))
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning("Flow skipped for '%s': %s", " -> ".join(sequence), e)

    flows.sort(key=lambda f: (-f.user_impact_score, -f.flow_frequency, f.route_sequence))
    return flows


def analyze_flow_pattern(
    sequence: Tuple[str, ...], journeys: List[Dict[str, Any]], cfg: Dict[str, Any]
) -> NavigationFlow:
    # Every member shares the sequence, so score arrays line up position by position
    score_matrix = np.asarray([j["scores"] for j in journeys], dtype=float)
    trajectory = score_matrix.mean(axis=0)

    degradation_points = []
    cumulative_drop = 0.0
    for i in range(1, len(sequence)):
        drop = finite_or(trajectory[i - 1] - trajectory[i])
        if drop <= 0:
            continue
        cumulative_drop += drop
        degradation_points.append(DegradationPoint(
            from_route=sequence[i - 1],
            to_route=sequence[i],
            performance_drop=drop,
            severity=classify_severity(drop),
        ))
    degradation_points.sort(key=lambda p: -p.performance_drop)

    return NavigationFlow(
        route_sequence=list(sequence),
        flow_frequency=len(journeys),
        bottleneck_routes=_bottleneck_routes(sequence, score_matrix),
        performance_degradation_points=degradation_points,
        optimization_potential=_optimization_potential(trajectory, cfg["attainable_score"]),
        user_impact_score=len(journeys) * cumulative_drop,
        avg_transition_time=_average_transition_ms(journeys, cfg["max_transition_minutes"]),
    )


def _bottleneck_routes(sequence: Tuple[str, ...], score_matrix: np.ndarray) -> List[str]:
    """Routes that sit on the 'from' side of a score drop in a majority of journeys."""
    if score_matrix.shape[1] < 2:
        return []
    drops = score_matrix[:, :-1] - score_matrix[:, 1:]
    share = (drops > 0).mean(axis=0)

    bottlenecks: List[str] = []
    for i, fraction in enumerate(share):
        if fraction > 0.5 and sequence[i] not in bottlenecks:
            bottlenecks.append(sequence[i])
    return bottlenecks


def _optimization_potential(trajectory: np.ndarray, attainable: float) -> float:
    if attainable <= 0 or trajectory.size == 0:
        return 0.0
    worst = float(trajectory.min())
    return clamp(finite_or((attainable - worst) / attainable * 100.0), 0.0, 100.0)


def _average_transition_ms(journeys: List[Dict[str, Any]], max_transition_minutes: float) -> float:
    """Mean gap between consecutive visits, ignoring gaps longer than the cap."""
    limit_ms = max_transition_minutes * 60_000.0
    gaps = []
    for journey in journeys:
        stamps = journey["timestamps_ms"]
        gaps.extend(b - a for a, b in zip(stamps[:-1], stamps[1:]) if 0 <= b - a < limit_ms)
    if not gaps:
        return 0.0
    return finite_or(float(np.mean(gaps)))
