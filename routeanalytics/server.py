# server.py
from fastmcp import FastMCP, Context    # ✅ FastMCP 2.x import
from typing import Optional, Dict, Any
import logging

from routeanalytics.services.snapshot_analyzer import (
    analyze_route_snapshot_results,
    get_route_insight_results,
    compare_route_snapshot,
    config
)

logging.basicConfig(level=config.get('logging', {}).get('log_level', 'INFO'))

mcp = FastMCP(name="routeanalytics")

@mcp.tool()
async def analyze_route_snapshot(snapshot_id: str, horizon: str = "7d", ctx: Context = None) -> Dict[str, Any]:
    """
    Run the route analytics engine over an exported route telemetry snapshot

    Args:
        snapshot_id: The snapshot identifier (folder under the artifacts path)
        horizon: Forecast horizon for performance predictions (1d/7d/30d)
        ctx: FastMCP workflow context for chaining

    Returns:
        Dictionary containing the report summary and generated file paths
    """
    return await analyze_route_snapshot_results(snapshot_id, horizon, ctx)

@mcp.tool()
async def get_route_insights(snapshot_id: str, limit: int = 10, insight_type: Optional[str] = None, ctx: Context = None) -> Dict[str, Any]:
    """
    Get the highest-confidence insights from a generated route analytics report

    Args:
        snapshot_id: The snapshot identifier
        limit: Maximum number of insights to return
        insight_type: Optional filter (correlation/prediction/flow_analysis/pattern_detection)
        ctx: FastMCP workflow context for chaining

    Returns:
        Dictionary containing the selected insights
    """
    return await get_route_insight_results(snapshot_id, limit, insight_type, ctx)

@mcp.tool()
async def compare_routes(snapshot_id: str, ctx: Context) -> Dict[str, Any]:
    """
    Compare each route against app averages and fps / memory performance targets

    Args:
        snapshot_id: The snapshot identifier
        ctx: FastMCP workflow context for chaining

    Returns:
        Dictionary containing route anomalies, comparisons and trends
    """
    return await compare_route_snapshot(snapshot_id, ctx)

def main():
    try:
        mcp.run("stdio")
    except KeyboardInterrupt:
        print("Shutting down Route Analytics MCP…")

if __name__ == "__main__":
    main()
