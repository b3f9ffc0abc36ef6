"""
Route analytics package for the MCP performance suite.

Analyzes per-route mobile performance telemetry (fps, memory, cpu) aggregated
across user sessions and produces cross-route correlations, short-horizon
forecasts, navigation-flow bottlenecks and multi-route degradation patterns.
"""

from .services.route_analytics_engine import analyze

__all__ = ["analyze"]
__version__ = "0.1.0"
