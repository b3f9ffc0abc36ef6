# services/journey_builder.py
"""
Journey reconstruction shared by the navigation flow analyzer and the
cross-route pattern detector.

A journey is the ordered run of route visits made by one device where each
visit starts within ``journey_window_minutes`` of the previous one. Devices are
kept in the order they first appear in the snapshot; only each device's own
visits are ordered by start timestamp.
"""

import numpy as np
import pandas as pd
from datetime import datetime, timezone
from typing import Any, Dict, List

from routeanalytics.models import AnalysisInput, RouteAggregate, RouteSession
from routeanalytics.utils.statistical_analyzer import session_performance_scores

SESSION_COLUMNS = ["device_id", "route_pattern", "timestamp", "avg_fps", "avg_memory", "avg_cpu"]


def utc_timestamp(timestamp: datetime) -> datetime:
    """Session start in UTC; naive timestamps are read as UTC, as in build_session_frame."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def chronological_sessions(route: RouteAggregate) -> List[RouteSession]:
    """The route's sessions ordered by UTC start time."""
    return sorted(route.sessions, key=lambda s: utc_timestamp(s.timestamp))


def build_session_frame(analysis_input: AnalysisInput) -> pd.DataFrame:
    """Flatten every route's sessions into one DataFrame with a per-session score column."""
    rows = [
        {
            "device_id": session.device_id,
            "route_pattern": route.route_pattern,
            "timestamp": session.timestamp,
            "avg_fps": session.avg_fps,
            "avg_memory": session.avg_memory,
            "avg_cpu": session.avg_cpu,
        }
        for route in analysis_input.routes
        for session in route.sessions
    ]
    if not rows:
        return pd.DataFrame(columns=SESSION_COLUMNS + ["timestamp_ms", "score"])

    df = pd.DataFrame(rows, columns=SESSION_COLUMNS)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    epoch = pd.Timestamp(0, tz="UTC")
    df["timestamp_ms"] = (df["timestamp"] - epoch).dt.total_seconds() * 1000.0
    df["score"] = session_performance_scores(df)
    return df


def extract_journeys(session_df: pd.DataFrame, window_minutes: float) -> List[Dict[str, Any]]:
    """
    Split the session frame into journeys of two or more visits.

    Each journey is a dict with ``device_id``, ``routes`` (tuple), and aligned
    lists ``scores``, ``fps``, ``memory``, ``cpu`` and ``timestamps_ms``.
    """
    if session_df.empty:
        return []

    window = pd.Timedelta(minutes=window_minutes)
    df = session_df.assign(_device_order=pd.factorize(session_df["device_id"])[0])
    df = df.sort_values(["_device_order", "timestamp"], kind="stable")

    new_device = df["device_id"].ne(df["device_id"].shift())
    new_window = df["timestamp"].diff() > window
    df["journey_id"] = (new_device | new_window).cumsum()

    sizes = df.groupby("journey_id")["journey_id"].transform("size")
    df = df[sizes >= 2]
    if df.empty:
        return []

    journey_ids = df["journey_id"].to_numpy()
    starts = np.flatnonzero(np.r_[True, journey_ids[1:] != journey_ids[:-1]])
    bounds = list(starts) + [len(df)]

    devices = df["device_id"].to_numpy()
    routes = df["route_pattern"].to_numpy()
    scores = df["score"].to_numpy(dtype=float)
    fps = df["avg_fps"].to_numpy(dtype=float)
    memory = df["avg_memory"].to_numpy(dtype=float)
    cpu = df["avg_cpu"].to_numpy(dtype=float)
    timestamps = df["timestamp_ms"].to_numpy(dtype=float)

    journeys = []
    for start, end in zip(bounds[:-1], bounds[1:]):
        journeys.append({
            "device_id": str(devices[start]),
            "routes": tuple(str(r) for r in routes[start:end]),
            "scores": scores[start:end].tolist(),
            "fps": fps[start:end].tolist(),
            "memory": memory[start:end].tolist(),
            "cpu": cpu[start:end].tolist(),
            "timestamps_ms": timestamps[start:end].tolist(),
        })
    return journeys
