import yaml
import os
import platform
from typing import Any, Dict, Mapping, Optional

# Engine defaults (overridden by config.yaml > route_analytics)
ENGINE_DEFAULTS: Dict[str, Any] = {
    # Route correlation analyzer
    "correlation_threshold": 0.3,
    "high_confidence_sessions": 10,
    "min_pair_samples": 3,
    # Performance predictor
    "min_prediction_sessions": 5,
    "prediction_horizon": "7d",
    "max_relative_interval_error": 0.30,
    "trend_significance": 0.05,
    "high_session_volume": 100,
    # Journeys / navigation flows
    "journey_window_minutes": 30,
    "max_transition_minutes": 10,
    "min_flow_frequency": 2,
    "attainable_score": 90.0,
    # Cross-route patterns
    "min_hop_change": 0.05,
    "min_hop_traversals": 2,
    "min_pattern_strength": 0.3,
    "min_pattern_confidence": 0.3,
    "pattern_confidence_saturation": 5,
    "max_patterns_per_type": 5,
    # Report / SLO
    "performance_target_ms": 500.0,
    "performance_target_sessions": 1000,
    "parallel_session_threshold": 5000,
    # Route-vs-target comparison
    "fps_target_min": 50.0,
    "fps_target_optimal": 55.0,
    "memory_optimal_mb": 300.0,
    "memory_warning_mb": 400.0,
    "memory_critical_mb": 600.0,
}


def load_config():
    # Assuming this file is at 'repo/routeanalytics/utils/config.py', we go up one level.
    package_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))

    # Platform-specific config mapping
    config_map = {
        'Darwin': 'config.mac.yaml',
        'Windows': 'config.windows.yaml'
    }

    system = platform.system()
    platform_config = config_map.get(system)

    # Use platform-specific config if it exists, otherwise fall back to config.yaml
    candidate_files = [platform_config, 'config.yaml'] if platform_config else ['config.yaml']

    for filename in candidate_files:
        config_path = os.path.join(package_root, filename)
        if os.path.exists(config_path):
            with open(config_path, 'r') as file:
                try:
                    return yaml.safe_load(file) or {}
                except yaml.YAMLError as e:
                    raise Exception(f"Error parsing '{filename}': {e}")

    raise FileNotFoundError("No valid configuration file found (checked platform-specific and default).")


def get_engine_config(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge the engine defaults with a ``route_analytics`` override mapping.

    Keys whose value is None are ignored so a partially filled config.yaml
    section keeps the defaults for everything it leaves blank.
    """
    overrides = overrides or {}
    return {**ENGINE_DEFAULTS, **{k: v for k, v in overrides.items() if v is not None}}


if __name__ == '__main__':
    # For testing purposes, print both configurations.
    config = load_config()
    print("Loaded general configuration:")
    print(config)
    print("Effective engine configuration:")
    print(get_engine_config(config.get('route_analytics', {})))
