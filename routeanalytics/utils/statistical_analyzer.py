# utils/statistical_analyzer.py
import math
import numpy as np
import pandas as pd
from typing import Dict, Sequence, Tuple, Any
from scipy import stats
from scipy.stats import linregress, pearsonr

# Reference ceilings used by the per-session performance score
FPS_CEILING = 60.0
MEMORY_CEILING_MB = 1000.0

# -----------------------------------------------
# Generic numeric helpers
# -----------------------------------------------
def finite_or(value: float, fallback: float = 0.0) -> float:
    """Return value when it is a finite number, otherwise the fallback."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return fallback
    return value if math.isfinite(value) else fallback

def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))

def percentage_deviation(value: float, reference: float) -> float:
    """Percentage deviation of value from reference; 0 when the reference is 0."""
    if not reference:
        return 0.0
    return finite_or((value - reference) / reference * 100.0)

def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return finite_or(np.std(np.asarray(values, dtype=float)))

# -----------------------------------------------
# Performance scoring
# -----------------------------------------------
def session_performance_score(avg_fps: float, avg_memory: float, avg_cpu: float) -> float:
    """0-100 score for a single session from its fps, memory (MB) and cpu (%) averages."""
    fps_score = min(100.0, avg_fps / FPS_CEILING * 100.0)
    memory_score = max(0.0, 100.0 - avg_memory / MEMORY_CEILING_MB * 100.0)
    cpu_score = max(0.0, 100.0 - avg_cpu)
    return clamp((fps_score + memory_score + cpu_score) / 3.0, 0.0, 100.0)

def session_performance_scores(df: pd.DataFrame) -> pd.Series:
    """Vectorised ``session_performance_score`` over avg_fps / avg_memory / avg_cpu columns."""
    fps_score = (df["avg_fps"] / FPS_CEILING * 100.0).clip(upper=100.0)
    memory_score = (100.0 - df["avg_memory"] / MEMORY_CEILING_MB * 100.0).clip(lower=0.0)
    cpu_score = (100.0 - df["avg_cpu"]).clip(lower=0.0)
    return ((fps_score + memory_score + cpu_score) / 3.0).clip(lower=0.0, upper=100.0)

def anomaly_score(fps_deviation: float, memory_deviation: float, cpu_deviation: float) -> float:
    """Normalised [0, 1] distance of a route from the app-wide norms."""
    total = abs(fps_deviation) + abs(memory_deviation) + abs(cpu_deviation)
    return clamp(finite_or(total / 300.0), 0.0, 1.0)

def classify_severity(drop: float, thresholds: Tuple[float, float, float] = (10.0, 25.0, 40.0)) -> str:
    """Bucket a score drop into critical / high / medium / low."""
    medium, high, critical = thresholds
    if drop > critical:
        return "critical"
    elif drop > high:
        return "high"
    elif drop > medium:
        return "medium"
    return "low"

# -----------------------------------------------
# Correlation functions
# -----------------------------------------------
def pearson_correlation_test(x: Sequence[float], y: Sequence[float]) -> Tuple[float, float]:
    """
    Pearson r and its significance (1 - p) over the first min(len(x), len(y)) aligned values.

    Returns (0.0, 0.0) when fewer than two aligned values exist or either side is
    constant, where pearsonr has no defined coefficient.
    """
    n = min(len(x), len(y))
    if n < 2:
        return 0.0, 0.0
    xa = np.asarray(x[:n], dtype=float)
    ya = np.asarray(y[:n], dtype=float)
    if not (np.isfinite(xa).all() and np.isfinite(ya).all()):
        return 0.0, 0.0
    if np.ptp(xa) == 0 or np.ptp(ya) == 0:
        return 0.0, 0.0
    r, p_value = pearsonr(xa, ya)
    r = clamp(finite_or(r), -1.0, 1.0)
    if n < 3:
        # Two points always line up; no evidence either way
        return r, 0.0
    return r, clamp(finite_or(1.0 - p_value), 0.0, 1.0)

def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    r, _ = pearson_correlation_test(x, y)
    return r

def mean_difference_significance(values: Sequence[float], reference: float) -> float:
    """1 - p of a one-sample t-test of values against a reference mean."""
    if len(values) < 2:
        return 0.0
    arr = np.asarray(values, dtype=float)
    if np.allclose(arr, arr[0]):
        return 1.0 if not math.isclose(float(arr[0]), reference) else 0.0
    result = stats.ttest_1samp(arr, reference)
    return clamp(finite_or(1.0 - float(result.pvalue)), 0.0, 1.0)

# -----------------------------------------------
# Trend functions
# -----------------------------------------------
def fit_linear_trend(x: Sequence[float], y: Sequence[float]) -> Dict[str, Any]:
    """
    Ordinary least-squares fit of y on x (scipy.stats.linregress).

    Returns slope, intercept, r_squared, residual standard error, the slope's
    two-sided p-value and the x statistics needed for prediction intervals.
    A degenerate fit (fewer than two points or constant x) comes back with
    ``degenerate=True`` and a flat line through the mean of y.
    """
    xa = np.asarray(x, dtype=float)
    ya = np.asarray(y, dtype=float)
    n = int(min(len(xa), len(ya)))
    xa, ya = xa[:n], ya[:n]

    y_mean = float(ya.mean()) if n else 0.0
    result = {
        "n": n,
        "slope": 0.0,
        "intercept": y_mean,
        "r_squared": 0.0,
        "residual_std_error": 0.0,
        "slope_p_value": 1.0,
        "x_mean": float(xa.mean()) if n else 0.0,
        "x_last": float(xa[-1]) if n else 0.0,
        "sxx": 0.0,
        "degenerate": True,
    }
    if n < 2 or not (np.isfinite(xa).all() and np.isfinite(ya).all()):
        return result

    x_mean = float(xa.mean())
    sxx = float(np.sum((xa - x_mean) ** 2))
    if sxx <= 0 or not math.isfinite(sxx):
        return result

    fit = linregress(xa, ya)
    # stderr is the slope's standard error: residual SE / sqrt(Sxx)
    residual_se = float(fit.stderr) * math.sqrt(sxx) if n > 2 else 0.0
    p_value = float(fit.pvalue) if n > 2 else 1.0

    result.update({
        "slope": finite_or(fit.slope),
        "intercept": finite_or(fit.intercept, y_mean),
        "r_squared": clamp(finite_or(fit.rvalue ** 2), 0.0, 1.0),
        "residual_std_error": finite_or(residual_se),
        "slope_p_value": clamp(finite_or(p_value, 1.0), 0.0, 1.0),
        "x_mean": x_mean,
        "sxx": sxx,
        "degenerate": False,
    })
    return result

def prediction_half_width(fit: Dict[str, Any], x0: float, confidence: float = 0.95) -> float:
    """Half-width of the OLS prediction interval at x0."""
    n = fit["n"]
    if fit["degenerate"] or n < 3:
        return 0.0
    t_crit = float(stats.t.ppf(0.5 + confidence / 2.0, n - 2))
    leverage = 1.0 + 1.0 / n + (x0 - fit["x_mean"]) ** 2 / fit["sxx"]
    return finite_or(t_crit * fit["residual_std_error"] * math.sqrt(leverage))

def normalized_trend_strength(values: Sequence[float]) -> float:
    """|OLS slope over the sample index| relative to the largest value, capped at 1."""
    if len(values) < 3:
        return 0.0
    peak = max(abs(v) for v in values)
    if peak == 0:
        return 0.0
    fit = fit_linear_trend(range(len(values)), values)
    return clamp(abs(fit["slope"]) / peak, 0.0, 1.0)
