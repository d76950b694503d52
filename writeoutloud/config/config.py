from __future__ import annotations

"""Configuration loading and validation for WriteOutLoud.

Package defaults live in ``defaults.yml``; a user config is layered over
them. ``validate_config`` sanity-checks numeric ranges and falls back to
the typed settings' defaults with a warning on bad values.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Type

import sys

import yaml
from pydantic import BaseModel

from .settings import ScoringConfig, SessionPolicy, TimingConfig

DEFAULTS_PATH = Path(__file__).with_name("defaults.yml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        print(f"ERROR: Config file not found: {path}", file=sys.stderr)
        sys.exit(1)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML or defaults.

    Args:
        path: Optional path to a YAML config. Its values override the
            package defaults key by key.

    Returns:
        A dictionary with configuration values.
    """
    return with_defaults(_load_yaml(Path(path)) if path else {})


def with_defaults(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Layer a (possibly partial) config over the package defaults."""
    return _merge(_load_yaml(DEFAULTS_PATH), cfg)


def _fallback(model: Type[BaseModel], key: str) -> Any:
    return model.model_fields[key].default


def _check(section: Dict[str, Any], key: str, model: Type[BaseModel], name: str, ok, rule: str) -> None:
    if key not in section:
        return
    try:
        valid = ok(float(section[key]))
    except (TypeError, ValueError):
        valid = False
    if not valid:
        default = _fallback(model, key)
        print(f"WARNING: {name}.{key} must be {rule}, using {default}.")
        section[key] = default


def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Ensure every section exists and validate configuration values.

    Missing keys are left out; the typed settings supply their defaults.

    Args:
        cfg: The raw configuration dictionary.

    Returns:
        The validated configuration dictionary.
    """
    for section in ("scoring", "timing", "session", "stats", "content"):
        if not isinstance(cfg.get(section), dict):
            cfg[section] = {}
    cfg.setdefault("explain", False)

    scoring = cfg["scoring"]
    timing = cfg["timing"]
    session = cfg["session"]

    # Range checks
    _check(scoring, "resample_points", ScoringConfig, "scoring", lambda v: v >= 2, ">= 2")
    _check(scoring, "neighbor_window", ScoringConfig, "scoring", lambda v: v >= 0, ">= 0")
    for key in ("tolerance_factor", "position_tolerance", "straight_position_tolerance"):
        _check(scoring, key, ScoringConfig, "scoring", lambda v: v > 0, "> 0")
    for key in ("speech_grace_s", "speech_finalize_timeout_s"):
        _check(timing, key, TimingConfig, "timing", lambda v: v > 0, "> 0")
    _check(session, "revision_threshold", SessionPolicy, "session", lambda v: 0.0 <= v <= 100.0, "within 0..100")
    _check(session, "shape_workers", SessionPolicy, "session", lambda v: v >= 1, ">= 1")

    return cfg
