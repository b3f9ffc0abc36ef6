# services/performance_predictor.py
"""
Route Performance Predictor.

Fits an ordinary least-squares trend to each eligible route's chronological
session-score series and forecasts the score at the requested horizon, with a
prediction interval taken from the residual spread of the fit.
"""

import logging
import math
import numpy as np
from scipy import stats
from typing import Any, Dict, List, Optional, Sequence, Tuple

from routeanalytics.models import AppAverages, PredictionRecord, RouteAggregate
from routeanalytics.services.journey_builder import chronological_sessions, utc_timestamp
from routeanalytics.utils.statistical_analyzer import (
    clamp,
    finite_or,
    fit_linear_trend,
    prediction_half_width,
    session_performance_score,
    standard_deviation,
)

logger = logging.getLogger(__name__)

HORIZON_DAYS = {"1d": 1.0, "7d": 7.0, "30d": 30.0}
SECONDS_PER_DAY = 86400.0

# Relative change over the observed span that counts as "movement" for a metric
METRIC_MOVEMENT_THRESHOLD = 0.10
MIN_FORECAST_ACCURACY = 0.05
MIN_DEVICE_DIVERSITY = 3


def generate_performance_predictions(
    routes: List[RouteAggregate],
    app_averages: AppAverages,
    cfg: Dict[str, Any],
    horizon: Optional[str] = None,
) -> List[PredictionRecord]:
    """
    Forecast every route with at least ``min_prediction_sessions`` sessions.

    Routes below the gate are skipped silently. Output is sorted by
    forecast_accuracy descending, then route_pattern.
    """
    horizon = horizon or cfg["prediction_horizon"]
    if horizon not in HORIZON_DAYS:
        logger.warning("Unknown prediction horizon '%s'; using 7d", horizon)
        horizon = "7d"

    predictions = []
    for route in routes:
        if len(route.sessions) < cfg["min_prediction_sessions"]:
            continue
        try:
            predictions.append(predict_route_performance(route, app_averages, cfg, horizon))
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning("Prediction skipped for route '%s': %s", route.route_pattern, e)

    predictions.sort(key=lambda p: (-p.forecast_accuracy, p.route_pattern))
    return predictions


def predict_route_performance(
    route: RouteAggregate, app_averages: AppAverages, cfg: Dict[str, Any], horizon: str = "7d"
) -> PredictionRecord:
    sessions = chronological_sessions(route)
    scores = [session_performance_score(s.avg_fps, s.avg_memory, s.avg_cpu) for s in sessions]
    x, span = _time_axis([utc_timestamp(s.timestamp).timestamp() for s in sessions])

    fit = fit_linear_trend(x, scores)
    significant = not fit["degenerate"] and fit["slope_p_value"] < cfg["trend_significance"]

    horizon_x = fit["x_last"] + HORIZON_DAYS[horizon]
    if significant:
        raw_forecast = fit["slope"] * horizon_x + fit["intercept"]
        half_width = prediction_half_width(fit, horizon_x)
    else:
        # No trend worth extrapolating; forecast the mean level
        raw_forecast = float(np.mean(scores))
        half_width = _level_half_width(scores)
    forecast = clamp(finite_or(raw_forecast, float(np.mean(scores))), 0.0, 100.0)

    max_half_width = cfg["max_relative_interval_error"] * forecast
    interval_capped = half_width > max_half_width
    half_width = min(half_width, max_half_width)
    interval = (max(0.0, forecast - half_width), min(100.0, forecast + half_width))

    if significant:
        trend = "improving" if fit["slope"] > 0 else "degrading"
    else:
        trend = "stable"

    accuracy = _forecast_accuracy(sessions, span)
    if interval_capped:
        accuracy *= 0.8
    accuracy = clamp(accuracy, MIN_FORECAST_ACCURACY, 1.0)

    factors = _contributing_factors(route, sessions, x, span, app_averages, cfg)
    if interval_capped:
        factors.append("noisy performance history")
    if not factors:
        factors.append("stable performance pattern")

    return PredictionRecord(
        route_pattern=route.route_pattern,
        predicted_performance_score=forecast,
        confidence_interval=interval,
        prediction_horizon=horizon,
        trend_direction=trend,
        forecast_accuracy=accuracy,
        contributing_factors=factors,
        recommendation_priority=_recommendation_priority(forecast, trend, accuracy),
    )


def _time_axis(epoch_seconds: Sequence[float]) -> Tuple[List[float], float]:
    """
    Elapsed days since the first session, and the observed span in days.

    When every session shares one timestamp the sample index is used instead,
    treating consecutive sessions as one day apart.
    """
    start = epoch_seconds[0]
    x = [(t - start) / SECONDS_PER_DAY for t in epoch_seconds]
    span = x[-1] - x[0]
    if span <= 0:
        x = [float(i) for i in range(len(epoch_seconds))]
        span = float(len(epoch_seconds) - 1)
    return x, span


def _level_half_width(scores: Sequence[float], confidence: float = 0.95) -> float:
    n = len(scores)
    if n < 2:
        return 0.0
    spread = float(np.std(np.asarray(scores, dtype=float), ddof=1))
    t_crit = float(stats.t.ppf(0.5 + confidence / 2.0, n - 1))
    return finite_or(t_crit * spread * math.sqrt(1.0 + 1.0 / n))


def _forecast_accuracy(sessions, span_days: float) -> float:
    """Blend of metric consistency, sample size and history length."""
    fps_std = standard_deviation([s.avg_fps for s in sessions])
    memory_std = standard_deviation([s.avg_memory for s in sessions])
    consistency = (max(0.0, 1.0 - fps_std / 30.0) + max(0.0, 1.0 - memory_std / 200.0)) / 2.0
    sample_factor = min(1.0, len(sessions) / 20.0)
    history_factor = min(1.0, span_days / 30.0)
    return (consistency + sample_factor + history_factor) / 3.0


def _contributing_factors(route, sessions, x, span, app_averages, cfg) -> List[str]:
    movements = []
    labels = {
        "fps": ("fps improving", "fps declining"),
        "memory": ("memory rising", "memory falling"),
        "cpu": ("cpu rising", "cpu falling"),
    }
    for metric, (up_label, down_label) in labels.items():
        values = [getattr(s, f"avg_{metric}") for s in sessions]
        mean = float(np.mean(values))
        if mean == 0:
            continue
        fit = fit_linear_trend(x, values)
        if fit["degenerate"]:
            continue
        relative_change = finite_or(fit["slope"] * span / abs(mean))
        if abs(relative_change) > METRIC_MOVEMENT_THRESHOLD:
            movements.append((abs(relative_change), up_label if relative_change > 0 else down_label))
    movements.sort(key=lambda m: -m[0])
    factors = [label for _, label in movements]

    if app_averages.avg_fps and route.avg_fps < app_averages.avg_fps * 0.8:
        factors.append("below average fps")
    if app_averages.avg_memory and route.avg_memory > app_averages.avg_memory * 1.2:
        factors.append("high memory usage")
    if app_averages.avg_cpu and route.avg_cpu > app_averages.avg_cpu * 1.2:
        factors.append("elevated cpu usage")
    if len(sessions) >= cfg["high_session_volume"]:
        factors.append("high session volume")
    if len({s.device_id for s in sessions}) < MIN_DEVICE_DIVERSITY:
        factors.append("limited device diversity")
    return factors


def _recommendation_priority(forecast: float, trend: str, accuracy: float) -> str:
    if forecast < 50 or (trend == "degrading" and accuracy >= 0.7):
        return "high"
    if forecast < 70 or trend == "degrading":
        return "medium"
    return "low"
