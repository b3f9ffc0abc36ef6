# services/snapshot_analyzer.py
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
from fastmcp import Context     # ✅ FastMCP 2.x import
from pydantic import ValidationError

from routeanalytics.models import AnalyticsReport
from routeanalytics.services.route_analytics_engine import analyze
from routeanalytics.services.route_comparison import (
    analyze_route_trends,
    compare_routes_against_global_performance,
    detect_route_anomalies,
    identify_problematic_routes,
)
from routeanalytics.services.performance_predictor import HORIZON_DAYS
from routeanalytics.utils.config import get_engine_config, load_config
from routeanalytics.utils.file_processor import (
    format_route_analytics_markdown,
    load_json_document,
    load_route_snapshot,
    report_to_document,
    write_json_output,
    write_markdown_output,
    write_report_csvs,
)

# Load configuration and environment
load_dotenv()
config = load_config()
engine_config = get_engine_config(config.get('route_analytics', {}))
artifacts_base = config['artifacts']['artifacts_path']

SNAPSHOT_FILE = 'route_snapshot.json'
REPORT_FILE = 'route_analytics_report.json'
MARKDOWN_FILE = 'route_analytics_report.md'


def _snapshot_path(snapshot_id: str) -> Path:
    return Path(artifacts_base) / snapshot_id / 'route_analytics' / SNAPSHOT_FILE


def _analysis_path(snapshot_id: str) -> Path:
    return Path(artifacts_base) / snapshot_id / 'analysis'


async def _missing_snapshot(snapshot_id: str, ctx: Context) -> Dict[str, Any]:
    snapshot_file = _snapshot_path(snapshot_id)
    error_msg = f"Route snapshot not found for '{snapshot_id}'. Export the route telemetry snapshot first."
    await ctx.error("Missing Prerequisite", error_msg)
    return {
        "error": error_msg,
        "status": "prerequisite_missing",
        "expected_file": str(snapshot_file)
    }

# -----------------------------------------------
# Main Functions for the Route Analytics MCP
# -----------------------------------------------
async def analyze_route_snapshot_results(snapshot_id: str, horizon: str, ctx: Context) -> Dict[str, Any]:
    """
    Run the route analytics engine over a saved snapshot and write the report artifacts.

    Args:
        snapshot_id: The snapshot identifier (folder name under the artifacts path)
        horizon: Forecast horizon for predictions (1d/7d/30d)
        ctx: FastMCP workflow context for chaining

    Returns:
        Dictionary with a report summary and the generated file paths
    """
    try:
        await ctx.info("Route Analytics", f"Starting analysis for snapshot {snapshot_id}")

        if horizon not in HORIZON_DAYS:
            error_msg = f"Invalid horizon '{horizon}'. Use one of: {', '.join(HORIZON_DAYS)}"
            await ctx.error("Invalid Argument", error_msg)
            return {"error": error_msg, "status": "failed"}

        snapshot_file = _snapshot_path(snapshot_id)
        if not snapshot_file.exists():
            return await _missing_snapshot(snapshot_id, ctx)

        analysis_input = await load_route_snapshot(snapshot_file)
        report = analyze(analysis_input, {**engine_config, 'prediction_horizon': horizon})

        analysis_path = _analysis_path(snapshot_id)
        analysis_path.mkdir(parents=True, exist_ok=True)
        output_files = await generate_route_analytics_outputs(report, analysis_path, snapshot_id, ctx)

        meta = report.performance_meta
        await ctx.info("Route Analytics Complete",
                       f"Analyzed {meta.sessions_processed} sessions across {meta.routes_analyzed} routes "
                       f"in {report.processing_time_ms:.1f} ms. Files saved to {analysis_path}")
        return {
            "status": "success",
            "snapshot_id": snapshot_id,
            "report_id": report.id,
            "summary": {
                "processing_time_ms": report.processing_time_ms,
                "performance_meta": meta.model_dump(),
                "route_correlations": len(report.route_correlations),
                "performance_predictions": len(report.performance_predictions),
                "navigation_flows": len(report.navigation_flows),
                "cross_route_patterns": len(report.cross_route_patterns),
                "insights": len(report.insights),
                "route_anomalies": len(report.route_anomalies),
            },
            "output_files": output_files
        }

    except ValidationError as e:
        error_msg = f"Route snapshot for '{snapshot_id}' is invalid: {str(e)}"
        await ctx.error("Snapshot Error", error_msg)
        return {"error": error_msg, "status": "failed"}
    except Exception as e:
        error_msg = f"Route analytics failed: {str(e)}"
        await ctx.error("Analysis Error", error_msg)
        return {"error": error_msg, "status": "failed"}


async def get_route_insight_results(snapshot_id: str, limit: int, insight_type: Optional[str], ctx: Context) -> Dict[str, Any]:
    """
    Return the top insights from a previously generated report.

    Args:
        snapshot_id: The snapshot identifier
        limit: Maximum number of insights to return
        insight_type: Optional filter (correlation/prediction/flow_analysis/pattern_detection)
        ctx: FastMCP workflow context for chaining

    Returns:
        Dictionary with the confidence-ordered insights
    """
    try:
        report_file = _analysis_path(snapshot_id) / REPORT_FILE
        if not report_file.exists():
            error_msg = "Route analytics report not found. Please run 'analyze_route_snapshot' first."
            await ctx.error("Missing Prerequisite", error_msg)
            return {
                "error": error_msg,
                "status": "prerequisite_missing",
                "required_step": "analyze_route_snapshot",
                "expected_file": str(report_file)
            }

        report = AnalyticsReport.model_validate(await load_json_document(report_file))
        insights = [i for i in report.insights if insight_type is None or i.insight_type == insight_type]
        selected = insights[:max(0, limit)]

        await ctx.info("Route Insights", f"Returning {len(selected)} of {len(insights)} insights")
        return {
            "status": "success",
            "snapshot_id": snapshot_id,
            "total_insights": len(insights),
            "insights": [i.model_dump(mode="json") for i in selected]
        }

    except Exception as e:
        error_msg = f"Failed to load route insights: {str(e)}"
        await ctx.error("Insights Error", error_msg)
        return {"error": error_msg, "status": "failed"}


async def compare_route_snapshot(snapshot_id: str, ctx: Context) -> Dict[str, Any]:
    """
    Compare every route in a snapshot against app averages and performance targets.

    Args:
        snapshot_id: The snapshot identifier
        ctx: FastMCP workflow context for chaining

    Returns:
        Dictionary with anomalies, comparisons, trends and problematic routes
    """
    try:
        snapshot_file = _snapshot_path(snapshot_id)
        if not snapshot_file.exists():
            return await _missing_snapshot(snapshot_id, ctx)

        analysis_input = await load_route_snapshot(snapshot_file)
        anomalies = detect_route_anomalies(analysis_input, engine_config)
        comparisons = compare_routes_against_global_performance(analysis_input, engine_config)
        trends = analyze_route_trends(analysis_input)
        problematic = identify_problematic_routes(analysis_input)

        await ctx.info("Route Comparison",
                       f"{len(anomalies)} anomalies, {len(comparisons)} comparisons, "
                       f"{len(problematic)} problematic routes")
        return {
            "status": "success",
            "snapshot_id": snapshot_id,
            "anomalies": [a.model_dump(mode="json") for a in anomalies],
            "comparisons": [c.model_dump(mode="json") for c in comparisons],
            "trends": [t.model_dump(mode="json") for t in trends],
            "problematic_routes": problematic
        }

    except Exception as e:
        error_msg = f"Route comparison failed: {str(e)}"
        await ctx.error("Comparison Error", error_msg)
        return {"error": error_msg, "status": "failed"}

# -----------------------------------------------
# Output helpers
# -----------------------------------------------
async def generate_route_analytics_outputs(report: AnalyticsReport, output_path: Path, snapshot_id: str, ctx: Context) -> Dict[str, Any]:
    """Generate the JSON, CSV and Markdown artifacts for a report"""

    output_files: Dict[str, Any] = {}

    try:
        json_file = output_path / REPORT_FILE
        await write_json_output(report_to_document(report), json_file)
        output_files['json'] = str(json_file)

        output_files['csv'] = await write_report_csvs(report, output_path)

        markdown_file = output_path / MARKDOWN_FILE
        await write_markdown_output(format_route_analytics_markdown(report, snapshot_id), markdown_file)
        output_files['markdown'] = str(markdown_file)

        await ctx.info("Output Generation", f"Generated {len(output_files)} analysis outputs")

    except OSError as e:
        await ctx.error("Output Generation Error", f"Failed to generate outputs: {str(e)}")

    return output_files
