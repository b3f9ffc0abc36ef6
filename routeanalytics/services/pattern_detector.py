# services/pattern_detector.py
"""
Cross-Route Pattern Detector.

Works on route-to-route hops taken inside journeys. For every hop (A -> B) it
measures how consistently a metric moves in one direction across all the
journeys that traverse it, expressed as a sign-agreement score in [-1, 1].
Chains of consecutive consistent hops become patterns:

* memory rising at each hop      -> memory_leak_chain
* cpu rising at each hop         -> cpu_cascade
* fps dropping then recovering   -> fps_recovery
* two or more metrics worsening
  at each of at least two hops   -> performance_spiral

pattern_strength is the mean per-hop agreement along the chain and
detection_confidence grows with the number of distinct journeys that show
the whole chain.
"""

import logging
import numpy as np
from typing import Any, Callable, Dict, List, Optional, Tuple

from routeanalytics.models import CrossRoutePattern
from routeanalytics.utils.statistical_analyzer import clamp, finite_or

logger = logging.getLogger(__name__)

Hop = Tuple[str, str]

MITIGATIONS: Dict[str, List[str]] = {
    "memory_leak_chain": [
        "Implement memory profiling for these routes",
        "Check for object leaks and circular references",
        "Add memory cleanup in route transitions",
        "Consider implementing memory pressure monitoring",
    ],
    "cpu_cascade": [
        "Optimize CPU-intensive operations in these routes",
        "Consider route-level performance budgeting",
        "Implement CPU throttling for background tasks",
        "Review component rendering optimizations",
    ],
    "fps_recovery": [
        "Analyze successful optimization strategies",
        "Apply similar improvements to other routes",
        "Document best practices for performance improvements",
        "Set up performance monitoring to maintain gains",
    ],
    "performance_spiral": [
        "Profile the whole navigation path instead of single routes",
        "Release resources and cancel background work on route exit",
        "Set combined fps, memory and cpu budgets for the affected routes",
        "Alert on multi-metric regressions along this path",
    ],
}

HOP_COUNTERS = ("fps_up", "fps_down", "memory_up", "cpu_up", "worsening")


def detect_cross_route_patterns(journeys: List[Dict[str, Any]], cfg: Dict[str, Any]) -> List[CrossRoutePattern]:
    """
    Detect every pattern type over the supplied journeys.

    Sorted by pattern_strength descending, then detection_confidence
    descending, then pattern_type and affected_routes.
    """
    if not journeys:
        return []

    hop_stats = collect_hop_statistics(journeys, cfg["min_hop_change"])
    agreement = {hop: _agreement_scores(counts) for hop, counts in hop_stats.items()}

    def signalling(key: str) -> Callable[[Hop], Optional[float]]:
        def check(hop: Hop) -> Optional[float]:
            if hop not in agreement or hop_stats[hop]["traversals"] < cfg["min_hop_traversals"]:
                return None
            score = agreement[hop][key]
            return score if score >= cfg["min_pattern_strength"] else None
        return check

    candidates: Dict[Tuple[str, Tuple[str, ...]], Dict[str, Any]] = {}
    for index, journey in enumerate(journeys):
        hops = _journey_hops(journey["routes"])
        _collect_runs(candidates, "memory_leak_chain", hops, signalling("memory_up"), 1, index)
        _collect_runs(candidates, "cpu_cascade", hops, signalling("cpu_up"), 1, index)
        _collect_runs(candidates, "performance_spiral", hops, signalling("worsening"), 2, index)
        _collect_recoveries(candidates, hops, signalling("fps_down"), signalling("fps_up"), index)

    patterns = []
    for (pattern_type, routes), info in candidates.items():
        strength = clamp(finite_or(float(np.mean(info["scores"]))), 0.0, 1.0)
        confidence = min(1.0, len(info["journeys"]) / float(cfg["pattern_confidence_saturation"]))
        if strength < cfg["min_pattern_strength"] or confidence < cfg["min_pattern_confidence"]:
            continue
        if strength <= 0 or confidence <= 0:
            continue
        patterns.append(CrossRoutePattern(
            pattern_type=pattern_type,
            affected_routes=list(routes),
            pattern_strength=strength,
            detection_confidence=confidence,
            suggested_mitigation=list(MITIGATIONS[pattern_type]),
        ))

    def rank(p: CrossRoutePattern):
        return (-p.pattern_strength, -p.detection_confidence, p.pattern_type, p.affected_routes)

    patterns.sort(key=rank)
    kept: List[CrossRoutePattern] = []
    per_type: Dict[str, int] = {}
    for pattern in patterns:
        if per_type.get(pattern.pattern_type, 0) >= cfg["max_patterns_per_type"]:
            continue
        per_type[pattern.pattern_type] = per_type.get(pattern.pattern_type, 0) + 1
        kept.append(pattern)
    return kept


# -----------------------------------------------
# Hop statistics
# -----------------------------------------------
def relative_changes(before: np.ndarray, after: np.ndarray) -> np.ndarray:
    """(after - before) / |before|, with a zero baseline mapped to the sign of the move."""
    before = np.asarray(before, dtype=float)
    after = np.asarray(after, dtype=float)
    delta = after - before
    safe = np.where(before != 0, np.abs(before), 1.0)
    return np.where(before != 0, delta / safe, np.sign(delta))


def collect_hop_statistics(journeys: List[Dict[str, Any]], min_change: float) -> Dict[Hop, Dict[str, int]]:
    """Per (from, to) hop: traversal count and how often each metric moved by more than min_change."""
    stats: Dict[Hop, Dict[str, int]] = {}
    for journey in journeys:
        routes = journey["routes"]
        if len(routes) < 2:
            continue
        fps = relative_changes(journey["fps"][:-1], journey["fps"][1:])
        memory = relative_changes(journey["memory"][:-1], journey["memory"][1:])
        cpu = relative_changes(journey["cpu"][:-1], journey["cpu"][1:])
        worsening = (fps < -min_change).astype(int) + (memory > min_change) + (cpu > min_change)

        for i in range(len(routes) - 1):
            hop = (routes[i], routes[i + 1])
            if hop[0] == hop[1]:
                continue
            counts = stats.setdefault(hop, {"traversals": 0, **{c: 0 for c in HOP_COUNTERS}})
            counts["traversals"] += 1
            counts["fps_up"] += int(fps[i] > min_change)
            counts["fps_down"] += int(fps[i] < -min_change)
            counts["memory_up"] += int(memory[i] > min_change)
            counts["cpu_up"] += int(cpu[i] > min_change)
            counts["worsening"] += int(worsening[i] >= 2)
    return stats


def _agreement_scores(counts: Dict[str, int]) -> Dict[str, float]:
    """Map each directional share to 2 * share - 1 (1 = every traversal agrees)."""
    n = counts["traversals"]
    if n == 0:
        return {c: -1.0 for c in HOP_COUNTERS}
    return {c: 2.0 * counts[c] / n - 1.0 for c in HOP_COUNTERS}


# -----------------------------------------------
# Chain extraction
# -----------------------------------------------
def _journey_hops(routes: Tuple[str, ...]) -> List[Optional[Hop]]:
    """Adjacent hops of a journey; self-hops become None and break chains."""
    return [
        (a, b) if a != b else None
        for a, b in zip(routes[:-1], routes[1:])
    ]


def _record(candidates, pattern_type: str, routes: Tuple[str, ...], scores: List[float], journey_index: int):
    info = candidates.setdefault((pattern_type, routes), {"scores": scores, "journeys": set()})
    info["journeys"].add(journey_index)


def _collect_runs(candidates, pattern_type, hops, check, min_hops: int, journey_index: int):
    """Record every maximal run of signalling hops with at least min_hops hops."""
    run: List[Hop] = []
    scores: List[float] = []
    for hop in hops + [None]:
        score = check(hop) if hop is not None else None
        if score is not None:
            run.append(hop)
            scores.append(score)
            continue
        if len(run) >= min_hops:
            routes = tuple([run[0][0]] + [h[1] for h in run])
            _record(candidates, pattern_type, routes, list(scores), journey_index)
        run, scores = [], []


def _collect_recoveries(candidates, hops, dip_check, recover_check, journey_index: int):
    """Record A -> B -> C where fps drops on the first hop and recovers on the second."""
    for first, second in zip(hops[:-1], hops[1:]):
        if first is None or second is None:
            continue
        dip = dip_check(first)
        recovery = recover_check(second)
        if dip is None or recovery is None:
            continue
        routes = (first[0], first[1], second[1])
        _record(candidates, "fps_recovery", routes, [dip, recovery], journey_index)
