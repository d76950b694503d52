from __future__ import annotations

"""Geometry & normalization utilities for stroke paths."""

from typing import Iterable, Sequence

import numpy as np

EPS = 1e-3
SQRT2 = float(np.sqrt(2.0))


def as_array(pts: Iterable[Sequence[float]]) -> np.ndarray:
    """Points as an (n, 2) float64 array; empty input gives shape (0, 2)."""
    arr = np.asarray([(float(p[0]), float(p[1])) for p in pts], dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, 2), dtype=np.float64)
    return arr


def bounds(arr: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """(min_xy, size_xy) of a point array."""
    if len(arr) == 0:
        return np.zeros(2), np.zeros(2)
    lo = arr.min(axis=0)
    hi = arr.max(axis=0)
    return lo, hi - lo


def normalize_points(arr: np.ndarray) -> np.ndarray:
    """Map a path into the unit box, preserving aspect ratio.

    The longer side spans [0, 1]; the shorter axis is centered at 0.5, so a
    degenerate (zero-width or zero-height) axis lands exactly on 0.5 and a
    single point lands on (0.5, 0.5).
    """
    if len(arr) == 0:
        return arr.copy()
    lo, size = bounds(arr)
    side = float(size.max())
    if side < EPS:
        return np.full_like(arr, 0.5)
    out = (arr - lo) / side
    out += (1.0 - size / side) / 2.0
    return out


def resample(arr: np.ndarray, n: int) -> np.ndarray:
    """Resample a polyline to exactly n points spaced by arc length."""
    if len(arr) == 0:
        return np.zeros((n, 2), dtype=np.float64)
    if len(arr) == 1:
        return np.repeat(arr[:1], n, axis=0)
    seg = np.linalg.norm(np.diff(arr, axis=0), axis=1)
    cum = np.concatenate([[0.0], np.cumsum(seg)])
    total = cum[-1]
    if total < 1e-9:
        return np.repeat(arr[:1], n, axis=0)
    targets = np.linspace(0.0, total, n)
    # repeated cum values (zero-length segments) are fine for np.interp
    xs = np.interp(targets, cum, arr[:, 0])
    ys = np.interp(targets, cum, arr[:, 1])
    return np.column_stack([xs, ys])


def banded_nearest(drawn: np.ndarray, expected: np.ndarray, window: int) -> np.ndarray:
    """Per drawn point, the distance to the nearest expected point within +/- window indices."""
    d = np.linalg.norm(drawn[:, None, :] - expected[None, :, :], axis=2)
    i = np.arange(len(drawn))[:, None]
    j = np.arange(len(expected))[None, :]
    d = np.where(np.abs(i - j) <= window, d, np.inf)
    return d.min(axis=1)


def linear_decay(distance: float, tolerance: float) -> float:
    """1 at zero distance, 0 at or beyond tolerance."""
    return float(max(0.0, 1.0 - distance / tolerance))
