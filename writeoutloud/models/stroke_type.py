from __future__ import annotations

"""Stroke categories used by character definitions and the shape scorer."""

from enum import Enum
from typing import Dict, Tuple


class StrokeType(str, Enum):
    # basic strokes
    HENG = "horizontal"
    SHU = "vertical"
    PIE = "downward_left"
    NA = "downward_right"
    DIAN = "dot"
    TI = "upward"
    # compound / modifier strokes
    ZHE = "turning"
    GOU = "hook"
    HENGZHE = "horizontal_turning"
    SHUGOU = "vertical_hook"
    HENGZHEGOU = "horizontal_turning_hook"

    @property
    def base_pinyin(self) -> str:
        return _NAMES[self][0]

    @property
    def description(self) -> str:
        return _NAMES[self][1]

    @property
    def is_compound(self) -> bool:
        return self in _COMPOUND

    @property
    def is_straight(self) -> bool:
        """Horizontal and vertical strokes get single-axis position scoring."""
        return self in (StrokeType.HENG, StrokeType.SHU)

    @classmethod
    def parse(cls, value: str) -> "StrokeType":
        """Accept either the YAML value ("horizontal") or the member name ("heng")."""
        v = str(value).strip().lower()
        for member in cls:
            if v == member.value or v == member.name.lower():
                return member
        raise ValueError(f"Unknown stroke type: {value!r}")


_NAMES: Dict[StrokeType, Tuple[str, str]] = {
    StrokeType.HENG: ("héng", "Horizontal"),
    StrokeType.SHU: ("shù", "Vertical"),
    StrokeType.PIE: ("piě", "Downward Left"),
    StrokeType.NA: ("nà", "Downward Right"),
    StrokeType.DIAN: ("diǎn", "Dot"),
    StrokeType.TI: ("tí", "Upward Flick"),
    StrokeType.ZHE: ("zhé", "Turning (Modifier)"),
    StrokeType.GOU: ("gōu", "Hook (Modifier)"),
    StrokeType.HENGZHE: ("héngzhé", "Horizontal Turning"),
    StrokeType.SHUGOU: ("shùgōu", "Vertical Hook"),
    StrokeType.HENGZHEGOU: ("héngzhégōu", "Horizontal Turning Hook"),
}

_COMPOUND = frozenset(
    {StrokeType.ZHE, StrokeType.GOU, StrokeType.HENGZHE, StrokeType.SHUGOU, StrokeType.HENGZHEGOU}
)
