from __future__ import annotations

"""Reference data: characters and their expected strokes."""

from dataclasses import dataclass, field
from typing import Iterable, Sequence, Tuple

from .stroke_type import StrokeType

Point = Tuple[float, float]


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def of(cls, points: Iterable[Sequence[float]]) -> "Rect":
        pts = [(float(p[0]), float(p[1])) for p in points]
        if not pts:
            return cls(0.0, 0.0, 0.0, 0.0)
        xs = [p[0] for p in pts]
        ys = [p[1] for p in pts]
        return cls(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


@dataclass(frozen=True)
class ExpectedStroke:
    """One stroke of a character: order is 1-based, name is what must be spoken."""

    order: int
    stroke_type: StrokeType
    name: str
    path: Tuple[Point, ...]
    bounding_box: Rect

    @classmethod
    def build(cls, order: int, stroke_type: StrokeType, name: str, path: Iterable[Sequence[float]]) -> "ExpectedStroke":
        pts = tuple((float(p[0]), float(p[1])) for p in path)
        return cls(order=order, stroke_type=stroke_type, name=name, path=pts, bounding_box=Rect.of(pts))


@dataclass(frozen=True)
class Character:
    id: str
    glyph: str
    pinyin: str
    meaning: str
    strokes: Tuple[ExpectedStroke, ...]
    difficulty: int = 1
    tags: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def stroke_count(self) -> int:
        return len(self.strokes)

    def expected_stroke(self, index: int) -> ExpectedStroke:
        """Look up a stroke by 0-based index."""
        if index < 0 or index >= len(self.strokes):
            raise IndexError(f"Stroke index {index} out of range for {self.glyph} ({len(self.strokes)} strokes)")
        return self.strokes[index]
