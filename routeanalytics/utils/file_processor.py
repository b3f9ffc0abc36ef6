# utils/file_processor.py
import json
import pandas as pd
from pathlib import Path
from typing import Dict, List, Any, Optional
import aiofiles

from routeanalytics.models import AnalysisInput, AnalyticsReport

# Flat column layouts for the CSV export, one per report collection
CSV_COLUMNS: Dict[str, List[str]] = {
    "route_correlations": [
        "source_route", "target_route", "correlation_strength", "performance_impact",
        "correlation_type", "confidence_level", "statistical_significance", "sample_size",
    ],
    "performance_predictions": [
        "route_pattern", "predicted_performance_score", "confidence_interval_lower",
        "confidence_interval_upper", "prediction_horizon", "trend_direction",
        "forecast_accuracy", "contributing_factors", "recommendation_priority",
    ],
    "navigation_flows": [
        "route_sequence", "flow_frequency", "bottleneck_routes", "performance_degradation_points",
        "optimization_potential", "user_impact_score", "avg_transition_time",
    ],
    "cross_route_patterns": [
        "pattern_type", "affected_routes", "pattern_strength", "detection_confidence",
        "suggested_mitigation",
    ],
    "insights": [
        "route_pattern", "route_name", "insight_type", "confidence", "impact_assessment",
        "actionable_recommendation", "insight_data",
    ],
    "route_anomalies": [
        "route_pattern", "route_name", "metric_type", "anomaly_severity", "deviation_from_norm",
        "current_value", "expected_value", "sessions_count", "unique_devices",
    ],
    "route_comparisons": [
        "route_pattern", "route_name", "comparison_type", "deviation_percentage", "metric_type",
        "sessions_count", "confidence",
    ],
}

SEQUENCE_SEPARATOR = " -> "
LIST_SEPARATOR = "; "

# -----------------------------------------------
# File loading functions
# -----------------------------------------------
async def load_route_snapshot(file_path: Path) -> AnalysisInput:
    """Load and validate a route snapshot JSON file (camelCase or snake_case keys)."""
    async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
        content = await f.read()
    return AnalysisInput.model_validate_json(content)

async def load_json_document(file_path: Path) -> Dict[str, Any]:
    async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
        return json.loads(await f.read())

# -----------------------------------------------
# File writing functions
# -----------------------------------------------
async def write_json_output(data: Dict[str, Any], file_path: Path) -> None:
    """Write data to JSON file asynchronously"""
    try:
        async with aiofiles.open(file_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(data, indent=2, ensure_ascii=False))
    except OSError as e:
        raise OSError(f"Failed to write JSON file {file_path}: {str(e)}") from e

async def write_csv_output(data: List[Dict[str, Any]], file_path: Path,
                           headers: Optional[List[str]] = None) -> None:
    """Write rows to CSV asynchronously; an empty row list still writes the header line."""
    if headers is None:
        headers = list(data[0].keys()) if data else []
    try:
        # pandas renders the CSV text, aiofiles writes it
        csv_content = pd.DataFrame(data, columns=headers).to_csv(index=False)
        async with aiofiles.open(file_path, 'w', newline='', encoding='utf-8') as f:
            await f.write(csv_content)
    except OSError as e:
        raise OSError(f"Failed to write CSV file {file_path}: {str(e)}") from e

async def write_markdown_output(content: str, file_path: Path) -> None:
    """Write markdown content to file asynchronously"""
    try:
        async with aiofiles.open(file_path, 'w', encoding='utf-8') as f:
            await f.write(content)
    except OSError as e:
        raise OSError(f"Failed to write Markdown file {file_path}: {str(e)}") from e

# -----------------------------------------------
# Report export functions
# -----------------------------------------------
def report_to_document(report: AnalyticsReport) -> Dict[str, Any]:
    """JSON-compatible document with the exact report field layout."""
    return report.model_dump(mode="json")

def flatten_report_for_csv(report: AnalyticsReport) -> Dict[str, List[Dict[str, Any]]]:
    """
    Flatten every report collection into CSV rows.

    List fields are joined into a single cell (route sequences with " -> ",
    label lists with "; "), the confidence interval is split into lower/upper
    columns and each insight's payload is kept as JSON text.
    """
    document = report_to_document(report)
    rows: Dict[str, List[Dict[str, Any]]] = {}

    rows["route_correlations"] = [dict(c) for c in document["route_correlations"]]

    rows["performance_predictions"] = []
    for p in document["performance_predictions"]:
        lower, upper = p["confidence_interval"]
        rows["performance_predictions"].append({
            "route_pattern": p["route_pattern"],
            "predicted_performance_score": p["predicted_performance_score"],
            "confidence_interval_lower": lower,
            "confidence_interval_upper": upper,
            "prediction_horizon": p["prediction_horizon"],
            "trend_direction": p["trend_direction"],
            "forecast_accuracy": p["forecast_accuracy"],
            "contributing_factors": LIST_SEPARATOR.join(p["contributing_factors"]),
            "recommendation_priority": p["recommendation_priority"],
        })

    rows["navigation_flows"] = [
        {
            "route_sequence": SEQUENCE_SEPARATOR.join(f["route_sequence"]),
            "flow_frequency": f["flow_frequency"],
            "bottleneck_routes": LIST_SEPARATOR.join(f["bottleneck_routes"]),
            "performance_degradation_points": LIST_SEPARATOR.join(
                f"{d['from_route']}->{d['to_route']}:{d['performance_drop']:.2f}:{d['severity']}"
                for d in f["performance_degradation_points"]
            ),
            "optimization_potential": f["optimization_potential"],
            "user_impact_score": f["user_impact_score"],
            "avg_transition_time": f["avg_transition_time"],
        }
        for f in document["navigation_flows"]
    ]

    rows["cross_route_patterns"] = [
        {
            "pattern_type": p["pattern_type"],
            "affected_routes": SEQUENCE_SEPARATOR.join(p["affected_routes"]),
            "pattern_strength": p["pattern_strength"],
            "detection_confidence": p["detection_confidence"],
            "suggested_mitigation": LIST_SEPARATOR.join(p["suggested_mitigation"]),
        }
        for p in document["cross_route_patterns"]
    ]

    rows["insights"] = [
        {
            **{k: i[k] for k in CSV_COLUMNS["insights"] if k != "insight_data"},
            "insight_data": json.dumps(i["insight_data"], ensure_ascii=False),
        }
        for i in document["insights"]
    ]

    rows["route_anomalies"] = [dict(a) for a in document["route_anomalies"]]
    rows["route_comparisons"] = [dict(c) for c in document["route_comparisons"]]
    return rows

async def write_report_csvs(report: AnalyticsReport, output_path: Path) -> Dict[str, str]:
    """Write one CSV per report collection and return {collection: file path}."""
    written = {}
    for collection, rows in flatten_report_for_csv(report).items():
        csv_file = output_path / f"{collection}.csv"
        await write_csv_output(rows, csv_file, headers=CSV_COLUMNS[collection])
        written[collection] = str(csv_file)
    return written

# -----------------------------------------------
# Formatting functions
# -----------------------------------------------
def format_route_analytics_markdown(report: AnalyticsReport, snapshot_id: Optional[str] = None) -> str:
    """Format the analytics report as a markdown document"""
    meta = report.performance_meta
    slo_status = "✅ Met" if meta.meets_performance_target else "❌ Missed"
    title = f"# Route Analytics Report - Snapshot {snapshot_id}" if snapshot_id else "# Route Analytics Report"

    md = [title, ""]
    md.append("## Executive Summary")
    md.append(f"- **Sessions Processed**: {meta.sessions_processed:,}")
    md.append(f"- **Routes Analyzed**: {meta.routes_analyzed}")
    md.append(f"- **Correlations**: {len(report.route_correlations)}")
    md.append(f"- **Predictions**: {len(report.performance_predictions)}")
    md.append(f"- **Navigation Flows**: {len(report.navigation_flows)}")
    md.append(f"- **Cross-Route Patterns**: {len(report.cross_route_patterns)}")
    md.append(f"- **Insights**: {len(report.insights)}")
    md.append("")

    md.append("## Processing SLO")
    md.append("| Metric | Value |")
    md.append("|--------|-------|")
    md.append(f"| Processing Time | {report.processing_time_ms:.1f} ms |")
    md.append(f"| Sessions | {meta.sessions_processed:,} |")
    md.append(f"| Target Met | {slo_status} |")
    md.append("")

    if report.insights:
        md.append("## Top Insights")
        md.append("| # | Type | Route | Confidence | Impact | Recommendation |")
        md.append("|---|------|-------|------------|--------|----------------|")
        for idx, insight in enumerate(report.insights[:10], 1):
            md.append(
                f"| {idx} | {insight.insight_type} | {insight.route_name} | {insight.confidence:.2f} "
                f"| {insight.impact_assessment} | {insight.actionable_recommendation} |"
            )
        md.append("")

    if report.route_correlations:
        md.append("## Route Correlations")
        md.append("| Source | Target | Strength | Type | Impact | Significance |")
        md.append("|--------|--------|----------|------|--------|--------------|")
        for c in report.route_correlations:
            md.append(
                f"| {c.source_route} | {c.target_route} | {c.correlation_strength:.3f} | {c.correlation_type} "
                f"| {c.performance_impact} | {c.statistical_significance:.3f} |"
            )
        md.append("")

    if report.performance_predictions:
        md.append("## Performance Predictions")
        md.append("| Route | Horizon | Predicted Score | Interval | Trend | Priority |")
        md.append("|-------|---------|-----------------|----------|-------|----------|")
        for p in report.performance_predictions:
            lower, upper = p.confidence_interval
            md.append(
                f"| {p.route_pattern} | {p.prediction_horizon} | {p.predicted_performance_score:.1f} "
                f"| {lower:.1f} - {upper:.1f} | {p.trend_direction} | {p.recommendation_priority} |"
            )
        md.append("")

    if report.navigation_flows:
        md.append("## Navigation Flows")
        md.append("| Sequence | Frequency | Bottlenecks | User Impact | Optimization Potential |")
        md.append("|----------|-----------|-------------|-------------|------------------------|")
        for f in report.navigation_flows:
            bottlenecks = ", ".join(f.bottleneck_routes) or "-"
            md.append(
                f"| {SEQUENCE_SEPARATOR.join(f.route_sequence)} | {f.flow_frequency} | {bottlenecks} "
                f"| {f.user_impact_score:.1f} | {f.optimization_potential:.1f}% |"
            )
        md.append("")

    if report.cross_route_patterns:
        md.append("## Cross-Route Patterns")
        for p in report.cross_route_patterns:
            md.append(f"### {p.pattern_type.replace('_', ' ').title()}")
            md.append(f"- **Routes**: {SEQUENCE_SEPARATOR.join(p.affected_routes)}")
            md.append(f"- **Strength**: {p.pattern_strength:.2f}")
            md.append(f"- **Confidence**: {p.detection_confidence:.2f}")
            for mitigation in p.suggested_mitigation:
                md.append(f"  - {mitigation}")
            md.append("")

    if report.route_anomalies:
        md.append("## Route Anomalies")
        md.append("| Route | Metric | Severity | Current | Expected | Deviation |")
        md.append("|-------|--------|----------|---------|----------|-----------|")
        for a in report.route_anomalies:
            md.append(
                f"| {a.route_pattern} | {a.metric_type} | {a.anomaly_severity} | {a.current_value:.1f} "
                f"| {a.expected_value:.1f} | {a.deviation_from_norm:+.1f}% |"
            )
        md.append("")

    md.append("---")
    md.append(f"*Generated: {report.generated_at}*")
    return "\n".join(md)
