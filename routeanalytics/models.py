# models.py
"""
Pydantic models for the Route Analytics Engine.

Input models mirror the aggregated route telemetry produced upstream and accept
its camelCase keys (``routePattern``, ``avgFps``, ``appAverages`` ...) as well as
the snake_case field names. Output models use the exact snake_case layout of the
exported report documents and CSV files, so ``model_dump(mode="json")`` is the
transport format.
"""

from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RiskLevel = Literal["low", "medium", "high"]
TrendDirection = Literal["improving", "stable", "degrading"]
PerformanceImpact = Literal["positive", "negative", "neutral"]
CorrelationType = Literal["memory_leak", "cpu_spike", "fps_degradation", "performance_boost"]
PredictionHorizon = Literal["1d", "7d", "30d"]
Priority = Literal["high", "medium", "low"]
Severity = Literal["critical", "high", "medium", "low"]
PatternType = Literal["memory_leak_chain", "cpu_cascade", "fps_recovery", "performance_spiral"]
MetricType = Literal["fps", "memory", "cpu"]

GLOBAL_AVERAGE_TARGET = "global_average"


class _InputModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class _OutputModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# -----------------------------------------------
# Input snapshot
# -----------------------------------------------
class RouteSession(_InputModel):
    """One user visit to a route instance."""

    session_id: str
    device_id: str
    route_pattern: str
    route_name: str = ""
    fps_samples: List[float] = Field(default_factory=list, alias="fpsMetrics")
    memory_samples: List[float] = Field(default_factory=list, alias="memoryMetrics")
    cpu_samples: List[float] = Field(default_factory=list, alias="cpuMetrics")
    avg_fps: float = 0.0
    avg_memory: float = 0.0
    avg_cpu: float = 0.0
    timestamp: datetime
    duration_ms: Optional[float] = Field(default=None, alias="screenDuration")


class RouteAggregate(_InputModel):
    """One row per distinct route pattern, owning its sessions."""

    route_name: str = ""
    route_pattern: str
    total_sessions: int = 0
    unique_devices: int = 0
    avg_fps: float = 0.0
    avg_memory: float = 0.0
    avg_cpu: float = 0.0
    fps_distribution: Dict[str, int] = Field(default_factory=dict)
    memory_distribution: Dict[str, int] = Field(default_factory=dict)
    performance_score: float = 0.0
    risk_level: RiskLevel = "low"
    performance_trend: TrendDirection = "stable"
    sessions: List[RouteSession] = Field(default_factory=list)


class AppAverages(_InputModel):
    avg_fps: float = 0.0
    avg_memory: float = 0.0
    avg_cpu: float = 0.0


class AnalysisInput(_InputModel):
    """The full read-only snapshot handed to ``analyze``."""

    routes: List[RouteAggregate] = Field(default_factory=list)
    app_averages: AppAverages = Field(default_factory=AppAverages)


# -----------------------------------------------
# Stage outputs
# -----------------------------------------------
class CorrelationRecord(_OutputModel):
    source_route: str
    target_route: str
    correlation_strength: float = Field(gt=0.0, le=1.0)
    performance_impact: PerformanceImpact
    correlation_type: CorrelationType
    confidence_level: float = Field(gt=0.0, le=1.0)
    statistical_significance: float = Field(gt=0.0, le=1.0)
    sample_size: int = Field(ge=0)


class PredictionRecord(_OutputModel):
    route_pattern: str
    predicted_performance_score: float = Field(ge=0.0, le=100.0)
    confidence_interval: Tuple[float, float]
    prediction_horizon: PredictionHorizon
    trend_direction: TrendDirection
    forecast_accuracy: float = Field(gt=0.0, le=1.0)
    contributing_factors: List[str] = Field(default_factory=list)
    recommendation_priority: Priority


class DegradationPoint(_OutputModel):
    from_route: str
    to_route: str
    performance_drop: float = Field(gt=0.0)
    severity: Severity


class NavigationFlow(_OutputModel):
    route_sequence: List[str] = Field(min_length=2)
    flow_frequency: int = Field(ge=1)
    bottleneck_routes: List[str] = Field(default_factory=list)
    performance_degradation_points: List[DegradationPoint] = Field(default_factory=list)
    optimization_potential: float = Field(ge=0.0, le=100.0)
    user_impact_score: float = Field(ge=0.0)
    avg_transition_time: float = Field(ge=0.0, description="Mean route-to-route transition in ms")


class CrossRoutePattern(_OutputModel):
    pattern_type: PatternType
    affected_routes: List[str] = Field(min_length=1)
    pattern_strength: float = Field(gt=0.0, le=1.0)
    detection_confidence: float = Field(gt=0.0, le=1.0)
    suggested_mitigation: List[str] = Field(default_factory=list)


# -----------------------------------------------
# Insights (tagged union keyed by insight_type)
# -----------------------------------------------
class _InsightBase(_OutputModel):
    route_pattern: str
    route_name: str
    confidence: float = Field(gt=0.0, le=1.0)
    impact_assessment: Priority
    actionable_recommendation: str = Field(min_length=1)


class CorrelationInsight(_InsightBase):
    insight_type: Literal["correlation"] = "correlation"
    insight_data: CorrelationRecord


class PredictionInsight(_InsightBase):
    insight_type: Literal["prediction"] = "prediction"
    insight_data: PredictionRecord


class FlowInsight(_InsightBase):
    insight_type: Literal["flow_analysis"] = "flow_analysis"
    insight_data: NavigationFlow


class PatternInsight(_InsightBase):
    insight_type: Literal["pattern_detection"] = "pattern_detection"
    insight_data: CrossRoutePattern


Insight = Annotated[
    Union[CorrelationInsight, PredictionInsight, FlowInsight, PatternInsight],
    Field(discriminator="insight_type"),
]


# -----------------------------------------------
# Route-vs-target analyses
# -----------------------------------------------
class RouteDeviation(_OutputModel):
    """A route's aggregate metrics measured against the app-wide averages."""

    route_pattern: str
    route_name: str
    fps_deviation: float
    memory_deviation: float
    cpu_deviation: float
    trend_direction: TrendDirection
    trend_confidence: float
    sessions_analyzed: int
    anomaly_score: float = Field(ge=0.0, le=1.0)
    risk_assessment: RiskLevel


class RouteAnomaly(_OutputModel):
    route_pattern: str
    route_name: str
    metric_type: MetricType
    anomaly_severity: Literal["critical", "high", "medium"]
    deviation_from_norm: float
    current_value: float
    expected_value: float
    sessions_count: int
    unique_devices: int


class RouteComparison(_OutputModel):
    route_pattern: str
    route_name: str
    comparison_type: Literal["underperforming", "overperforming", "normal"]
    deviation_percentage: float
    metric_type: MetricType
    sessions_count: int
    confidence: float


class RouteTrend(_OutputModel):
    route_pattern: str
    route_name: str
    trend_direction: TrendDirection
    trend_significance: Priority
    metric_type: MetricType
    trend_strength: float
    sessions_analyzed: int


# -----------------------------------------------
# Report
# -----------------------------------------------
class PerformanceMeta(_OutputModel):
    sessions_processed: int
    routes_analyzed: int
    meets_performance_target: bool


class AnalyticsReport(_OutputModel):
    id: str
    generated_at: str
    processing_time_ms: float
    route_correlations: List[CorrelationRecord] = Field(default_factory=list)
    performance_predictions: List[PredictionRecord] = Field(default_factory=list)
    navigation_flows: List[NavigationFlow] = Field(default_factory=list)
    cross_route_patterns: List[CrossRoutePattern] = Field(default_factory=list)
    insights: List[Insight] = Field(default_factory=list)
    performance_meta: PerformanceMeta
    route_anomalies: List[RouteAnomaly] = Field(default_factory=list)
    route_comparisons: List[RouteComparison] = Field(default_factory=list)
