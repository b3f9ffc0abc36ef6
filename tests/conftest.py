"""Shared fixtures for the route analytics test suite."""

from unittest.mock import AsyncMock

import pytest

from routeanalytics.utils.config import get_engine_config

from factories import make_input, make_route, make_session, synthetic_snapshot, uniform_route


@pytest.fixture
def engine_config():
    """Engine defaults as the stages receive them."""
    return get_engine_config()


@pytest.fixture(scope="session")
def synthetic_input():
    """1,200 sessions across 10 route patterns (seeded)."""
    return synthetic_snapshot(1200, seed=7)


@pytest.fixture
def app_averages_50():
    return {"avg_fps": 50.5, "avg_memory": 250.0, "avg_cpu": 30.0}


@pytest.fixture
def outlier_input(app_averages_50):
    """A healthy route plus one far below the app averages on every metric."""
    return make_input(
        [
            uniform_route("/home", 3, fps=55.0, memory=250.0, cpu=30.0),
            uniform_route("/reports/:id", 3, fps=10.0, memory=600.0, cpu=60.0),
        ],
        app_averages_50,
    )


@pytest.fixture
def declining_route():
    """Ten daily sessions whose fps, memory and cpu all worsen linearly."""
    sessions = [
        make_session("/checkout", f"device-{i % 3}", i * 24 * 60, 58.0 - 3 * i, 300.0 + 20 * i, 30.0 + 3 * i)
        for i in range(10)
    ]
    return make_route("/checkout", sessions, performance_trend="degrading")


@pytest.fixture
def mock_ctx():
    """FastMCP context stand-in with awaitable logging methods."""
    ctx = AsyncMock()
    ctx.info = AsyncMock()
    ctx.error = AsyncMock()
    ctx.warning = AsyncMock()
    return ctx
