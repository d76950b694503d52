from __future__ import annotations

"""Typed scoring/timing/session settings using Pydantic."""

from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator

_WEIGHT_TOLERANCE = 1e-6


def _check_sum(weights: Dict[str, float], keys: tuple[str, ...], label: str) -> Dict[str, float]:
    missing = [k for k in keys if k not in weights]
    if missing:
        raise ValueError(f"{label} weights missing keys: {missing}")
    if any(float(weights[k]) < 0 for k in keys):
        raise ValueError(f"{label} weights must be non-negative")
    total = sum(float(weights[k]) for k in keys)
    if abs(total - 1.0) > _WEIGHT_TOLERANCE:
        raise ValueError(f"{label} weights must sum to 1.0, got {total:.4f}")
    return {k: float(weights[k]) for k in keys}


SHAPE_KEYS = ("shape", "direction", "position", "proportion")
SESSION_KEYS = ("shape", "naming", "concurrency")


class ScoringConfig(BaseModel):
    """Hyperparameters of the shape scorer.

    - resample_points: points per path after arc-length resampling
    - neighbor_window: +/- index band searched for the nearest expected point
    - tolerance_factor: scales sqrt(2) into the distance that maps to zero similarity
    - position_tolerance / straight_position_tolerance: linear-decay thresholds
    - position_boost_below / position_boost: lift for low raw position on straight strokes
    """

    resample_points: int = Field(50, ge=2)
    neighbor_window: int = Field(5, ge=0)
    tolerance_factor: float = Field(0.5, gt=0)
    position_tolerance: float = Field(0.25, gt=0)
    straight_position_tolerance: float = Field(0.4, gt=0)
    proportion_floor: float = Field(0.05, gt=0)
    position_boost_below: float = Field(0.6, ge=0, le=1)
    position_boost: float = Field(0.5, ge=0, le=1)
    too_few_points_score: float = Field(10.0, ge=0, le=100)
    default_weights: Dict[str, float] = Field(
        default_factory=lambda: {"shape": 0.4, "direction": 0.3, "position": 0.2, "proportion": 0.1}
    )
    straight_weights: Dict[str, float] = Field(
        default_factory=lambda: {"shape": 0.45, "direction": 0.35, "position": 0.1, "proportion": 0.1}
    )

    @field_validator("default_weights", "straight_weights")
    @classmethod
    def _weights_sum_to_one(cls, v: Dict[str, float]) -> Dict[str, float]:
        return _check_sum(v, SHAPE_KEYS, "shape")

    @classmethod
    def from_cfg(cls, cfg: Dict[str, Any]) -> "ScoringConfig":
        section = dict(cfg.get("scoring", {}) or {})
        weights = section.pop("weights", {}) or {}
        if "default" in weights:
            section["default_weights"] = weights["default"]
        if "straight" in weights:
            section["straight_weights"] = weights["straight"]
        return cls(**section)


class TimingConfig(BaseModel):
    speech_grace_s: float = Field(0.3, gt=0)
    speech_finalize_timeout_s: float = Field(5.0, gt=0)

    @classmethod
    def from_cfg(cls, cfg: Dict[str, Any]) -> "TimingConfig":
        return cls(**(cfg.get("timing", {}) or {}))


class SessionPolicy(BaseModel):
    weights: Dict[str, float] = Field(default_factory=lambda: {"shape": 0.5, "naming": 0.3, "concurrency": 0.2})
    revision_threshold: float = Field(65.0, ge=0, le=100)
    encourage_below_ratio: float = Field(0.5, ge=0, le=1)
    shape_workers: int = Field(1, ge=1)

    @field_validator("weights")
    @classmethod
    def _weights_sum_to_one(cls, v: Dict[str, float]) -> Dict[str, float]:
        return _check_sum(v, SESSION_KEYS, "session")

    @classmethod
    def from_cfg(cls, cfg: Dict[str, Any]) -> "SessionPolicy":
        return cls(**(cfg.get("session", {}) or {}))
