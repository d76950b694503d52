from __future__ import annotations

"""Shape accuracy of a drawn stroke against its reference path.

Both paths are normalized into the unit box and resampled by arc length,
then compared on four components:

- shape: mean banded nearest-neighbour distance, mapped to [0, 1]
- direction: cosine of the start->end vectors, remapped to [0, 1]
- position: start/end point offsets with linear decay (single-axis for
  straight horizontal/vertical strokes)
- proportion: ratio of bounding-box aspect ratios

The components are combined with per-category weights into a 0..100 score.
``score_shape`` is pure and safe to call from worker threads.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence

import numpy as np

from ..config.settings import ScoringConfig
from ..models.stroke_type import StrokeType
from .geometry import (
    EPS,
    SQRT2,
    as_array,
    banded_nearest,
    bounds,
    linear_decay,
    normalize_points,
    resample,
)

EMPTY_SCORE = 0.0

_DEFAULT_CFG = ScoringConfig()


@dataclass(frozen=True)
class ShapeBreakdown:
    shape: float
    direction: float
    position: float
    position_raw: float
    proportion: float
    weights: Dict[str, float]
    score: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "shape": round(self.shape, 4),
            "direction": round(self.direction, 4),
            "position": round(self.position, 4),
            "position_raw": round(self.position_raw, 4),
            "proportion": round(self.proportion, 4),
            "score": round(self.score, 2),
        }


def shape_similarity(drawn: np.ndarray, expected: np.ndarray, window: int, tolerance_factor: float) -> float:
    nearest = banded_nearest(drawn, expected, window)
    avg = float(nearest.mean())
    sim = 1.0 - avg / (SQRT2 * tolerance_factor)
    return float(min(1.0, max(0.0, sim)))


def direction_similarity(drawn: np.ndarray, expected: np.ndarray) -> float:
    dv = drawn[-1] - drawn[0]
    ev = expected[-1] - expected[0]
    dm = float(np.linalg.norm(dv))
    em = float(np.linalg.norm(ev))
    if dm > EPS and em > EPS:
        cosine = float(np.dot(dv, ev) / (dm * em))
        return (max(-1.0, min(1.0, cosine)) + 1.0) / 2.0
    if dm <= EPS and em <= EPS:
        return 1.0
    return 0.0


def _offset(a: np.ndarray, b: np.ndarray, stroke_type: StrokeType) -> float:
    if stroke_type is StrokeType.HENG:
        return float(abs(a[1] - b[1]))
    if stroke_type is StrokeType.SHU:
        return float(abs(a[0] - b[0]))
    return float(np.linalg.norm(a - b))


def position_accuracy(drawn: np.ndarray, expected: np.ndarray, stroke_type: StrokeType, cfg: ScoringConfig) -> float:
    """Raw start/end position accuracy in [0, 1] (no boost)."""
    tol = cfg.straight_position_tolerance if stroke_type.is_straight else cfg.position_tolerance
    start = linear_decay(_offset(drawn[0], expected[0], stroke_type), tol)
    end = linear_decay(_offset(drawn[-1], expected[-1], stroke_type), tol)
    return float(min(1.0, max(0.0, (start + end) / 2.0)))


def proportion_similarity(drawn: np.ndarray, expected: np.ndarray, floor: float) -> float:
    _, ds = bounds(drawn)
    _, es = bounds(expected)
    da = max(float(ds[0]), floor) / max(float(ds[1]), floor)
    ea = max(float(es[0]), floor) / max(float(es[1]), floor)
    if max(da, ea) < EPS:
        return 1.0
    return float(min(1.0, max(0.0, min(da, ea) / max(da, ea, EPS))))


def weights_for(stroke_type: StrokeType, cfg: ScoringConfig) -> Dict[str, float]:
    return dict(cfg.straight_weights if stroke_type.is_straight else cfg.default_weights)


def score_breakdown(
    drawn: Iterable[Sequence[float]],
    expected: Iterable[Sequence[float]],
    stroke_type: StrokeType,
    cfg: Optional[ScoringConfig] = None,
) -> ShapeBreakdown:
    """Full component breakdown; see module docstring."""
    cfg = cfg or _DEFAULT_CFG
    d_raw = as_array(drawn)
    e_raw = as_array(expected)
    weights = weights_for(stroke_type, cfg)

    if len(d_raw) == 0 or len(e_raw) == 0:
        return ShapeBreakdown(0.0, 0.0, 0.0, 0.0, 0.0, weights, EMPTY_SCORE)
    if len(d_raw) < 2 or len(e_raw) < 2:
        return ShapeBreakdown(0.0, 0.0, 0.0, 0.0, 0.0, weights, float(cfg.too_few_points_score))

    d = resample(normalize_points(d_raw), cfg.resample_points)
    e = resample(normalize_points(e_raw), cfg.resample_points)

    shape = shape_similarity(d, e, cfg.neighbor_window, cfg.tolerance_factor)
    direction = direction_similarity(d, e)
    position_raw = position_accuracy(d, e, stroke_type, cfg)
    position = position_raw
    if stroke_type.is_straight and position_raw < cfg.position_boost_below:
        position = position_raw + (1.0 - position_raw) * cfg.position_boost
    proportion = proportion_similarity(d, e, cfg.proportion_floor)

    weighted = (
        shape * weights["shape"]
        + direction * weights["direction"]
        + position * weights["position"]
        + proportion * weights["proportion"]
    )
    score = float(min(100.0, max(0.0, weighted * 100.0)))
    return ShapeBreakdown(shape, direction, position, position_raw, proportion, weights, score)


def score_shape(
    drawn: Iterable[Sequence[float]],
    expected: Iterable[Sequence[float]],
    stroke_type: StrokeType,
    cfg: Optional[ScoringConfig] = None,
) -> float:
    """Shape accuracy in [0, 100].

    Empty drawn or expected paths score 0; fewer than two points on either
    side scores ``cfg.too_few_points_score``.
    """
    return score_breakdown(drawn, expected, stroke_type, cfg).score
