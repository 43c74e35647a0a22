"""
ROLE: Load YAML config, apply defaults, validate.

INPUTS:
  - Topic: n/a  Type: n/a
OUTPUTS:
  - Topic: n/a  Type: n/a

CONFIG KEYS:
  - config_path: path to YAML file
  - runtime.enable_validation: enable validation on load (bool)

PERF / TIMING:
  - load once at startup

FAILURE MODES:
  - invalid value with validation enabled -> raise ValueError listing every problem

LOG EVENTS:
  - module=core.config, event=validation_failed, payload keys=path, errors

TESTS:
  - tests/test_config.py

CONTRACT DETAILS:
# Config contract

- A config file only needs the keys it changes; everything else comes from defaults.
- Filter noise constants are not configurable.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

import yaml

from barcodetrack.core.logging import LEVELS


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load YAML config (or just defaults when path is None)."""
    data: Dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config root must be a mapping: {path}")
    merged = _merge_dicts(_default_config(), data)
    if bool(get_path(merged, "runtime.enable_validation", False)):
        errors = validate_config(merged)
        if errors:
            joined = "\n".join(f"- {e}" for e in errors)
            raise ValueError(f"Config validation failed for {path or '<defaults>'}:\n{joined}")
    return merged


def get_path(config: Dict[str, Any], dotted_path: str, default: Any = None) -> Any:
    """Get a nested config value by dotted path."""
    node: Any = config
    for key in dotted_path.split("."):
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return node


def default_config() -> Dict[str, Any]:
    return _default_config()


def _default_config() -> Dict[str, Any]:
    return {
        "runtime": {
            "run_id": "",
            "enable_validation": True,
            "artifacts": {
                "dir": "artifacts",
                "retention": {
                    "max_runs": 10,
                },
            },
        },
        "tracking": {
            # Per-edge pixel tolerance for matching a detection to a tracked object.
            "close_threshold": 30.0,
            # Side length of the square hit region around each tracked center.
            "region_size": 100.0,
            "latency_budget_ms": 8.0,
        },
        "identity": {
            "color_seed": None,
        },
        "replay": {
            "path": "",
            "rate_hz": 30.0,
            "loop": False,
            "deterministic": True,
        },
        "trace": {
            "enabled": True,
        },
        "bus": {
            "max_queue_depth": 8,
        },
        "logging": {
            "level": "info",
            "file": {
                "enabled": True,
                "flush_interval_ms": 200,
                "rotate_mb": 50,
            },
        },
        "perf": {
            "enabled": True,
            "emit_hz": 1.0,
        },
    }


def _merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Return a list of validation errors for the merged config."""
    errors: List[str] = []

    for key in ("close_threshold", "region_size", "latency_budget_ms"):
        value = get_path(config, f"tracking.{key}")
        number = _as_float(value)
        if number is None:
            errors.append(f"tracking.{key} must be a number, got {value!r}")
        elif number <= 0:
            errors.append(f"tracking.{key} must be > 0")

    seed = get_path(config, "identity.color_seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int) or seed < 0):
        errors.append("identity.color_seed must be null or a non-negative integer")

    depth = get_path(config, "bus.max_queue_depth")
    if not isinstance(depth, int) or isinstance(depth, bool) or depth <= 0:
        errors.append("bus.max_queue_depth must be a positive integer")

    level = str(get_path(config, "logging.level", "info")).lower()
    if level not in LEVELS:
        errors.append(f"logging.level '{level}' must be one of {sorted(LEVELS)}")

    rate = _as_float(get_path(config, "replay.rate_hz", 30.0))
    if rate is None or rate < 0:
        errors.append("replay.rate_hz must be >= 0 (0 = unpaced)")

    emit_hz = _as_float(get_path(config, "perf.emit_hz", 1.0))
    if emit_hz is None or emit_hz <= 0:
        errors.append("perf.emit_hz must be > 0")

    max_runs = get_path(config, "runtime.artifacts.retention.max_runs", 10)
    if not isinstance(max_runs, int) or max_runs < 0:
        errors.append("runtime.artifacts.retention.max_runs must be >= 0")

    return errors


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return None
