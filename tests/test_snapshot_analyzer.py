"""Tests for services/snapshot_analyzer.py (the MCP tool bodies)."""

import json

import pytest

from routeanalytics.services import snapshot_analyzer
from routeanalytics.services.snapshot_analyzer import (
    analyze_route_snapshot_results,
    compare_route_snapshot,
    get_route_insight_results,
)

from factories import make_input, uniform_route

SNAPSHOT_ID = "snap-001"


@pytest.fixture
def artifacts(tmp_path, monkeypatch):
    monkeypatch.setattr(snapshot_analyzer, "artifacts_base", str(tmp_path))
    return tmp_path


def _write_snapshot(artifacts, analysis_input, snapshot_id=SNAPSHOT_ID):
    folder = artifacts / snapshot_id / "route_analytics"
    folder.mkdir(parents=True)
    document = analysis_input.model_dump(mode="json", by_alias=True)
    (folder / "route_snapshot.json").write_text(json.dumps(document), encoding="utf-8")


@pytest.fixture
def snapshot(artifacts, outlier_input):
    _write_snapshot(artifacts, outlier_input)
    return artifacts


@pytest.mark.asyncio
class TestAnalyzeRouteSnapshot:
    async def test_happy_path_writes_artifacts(self, snapshot, mock_ctx):
        result = await analyze_route_snapshot_results(SNAPSHOT_ID, "7d", mock_ctx)

        assert result["status"] == "success"
        assert result["summary"]["performance_meta"]["sessions_processed"] == 6
        assert result["summary"]["route_correlations"] == 1

        analysis = snapshot / SNAPSHOT_ID / "analysis"
        assert (analysis / "route_analytics_report.json").exists()
        assert (analysis / "route_analytics_report.md").exists()
        assert (analysis / "insights.csv").exists()
        assert result["output_files"]["json"] == str(analysis / "route_analytics_report.json")
        mock_ctx.error.assert_not_called()

    async def test_missing_snapshot(self, artifacts, mock_ctx):
        result = await analyze_route_snapshot_results("unknown", "7d", mock_ctx)
        assert result["status"] == "prerequisite_missing"
        assert result["expected_file"].endswith("route_snapshot.json")
        mock_ctx.error.assert_awaited_once()

    async def test_invalid_horizon(self, snapshot, mock_ctx):
        result = await analyze_route_snapshot_results(SNAPSHOT_ID, "90d", mock_ctx)
        assert result["status"] == "failed"
        assert "Invalid horizon" in result["error"]

    async def test_invalid_snapshot(self, artifacts, mock_ctx):
        folder = artifacts / SNAPSHOT_ID / "route_analytics"
        folder.mkdir(parents=True)
        (folder / "route_snapshot.json").write_text('{"routes": [{"avgFps": "fast"}]}', encoding="utf-8")

        result = await analyze_route_snapshot_results(SNAPSHOT_ID, "7d", mock_ctx)
        assert result["status"] == "failed"
        assert "is invalid" in result["error"]


@pytest.mark.asyncio
class TestGetRouteInsights:
    async def test_requires_a_report(self, snapshot, mock_ctx):
        result = await get_route_insight_results(SNAPSHOT_ID, 10, None, mock_ctx)
        assert result["status"] == "prerequisite_missing"
        assert result["required_step"] == "analyze_route_snapshot"

    async def test_limit_and_filter(self, artifacts, mock_ctx):
        analysis_input = make_input([
            uniform_route("/home", 6, fps=55.0),
            uniform_route("/reports/:id", 6, fps=10.0, memory=600.0, cpu=60.0),
        ], {"avg_fps": 50.5, "avg_memory": 250.0, "avg_cpu": 30.0})
        _write_snapshot(artifacts, analysis_input)
        await analyze_route_snapshot_results(SNAPSHOT_ID, "7d", mock_ctx)

        everything = await get_route_insight_results(SNAPSHOT_ID, 10, None, mock_ctx)
        assert everything["status"] == "success"
        assert everything["total_insights"] >= 3

        top = await get_route_insight_results(SNAPSHOT_ID, 1, None, mock_ctx)
        assert len(top["insights"]) == 1
        assert top["insights"][0] == everything["insights"][0]

        predictions = await get_route_insight_results(SNAPSHOT_ID, 10, "prediction", mock_ctx)
        assert predictions["total_insights"] == 2
        assert {i["insight_type"] for i in predictions["insights"]} == {"prediction"}


@pytest.mark.asyncio
class TestCompareRouteSnapshot:
    async def test_comparison(self, snapshot, mock_ctx):
        result = await compare_route_snapshot(SNAPSHOT_ID, mock_ctx)

        assert result["status"] == "success"
        assert {a["metric_type"] for a in result["anomalies"]} == {"fps", "memory", "cpu"}
        assert result["comparisons"]
        assert result["trends"] == []
        assert result["problematic_routes"] == ["/reports/:id"]

    async def test_missing_snapshot(self, artifacts, mock_ctx):
        result = await compare_route_snapshot("unknown", mock_ctx)
        assert result["status"] == "prerequisite_missing"
