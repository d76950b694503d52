from __future__ import annotations

"""Character definition loader (YAML).

Loads characters with their ordered expected strokes from a YAML resource.
Loading is strict: malformed entries raise ValueError naming the entry.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..models.character import Character, ExpectedStroke, Rect
from ..models.stroke_type import StrokeType


def _default_characters_path() -> str:
    return str(Path(__file__).resolve().parents[1] / "resources" / "characters.yml")


def _parse_stroke(char_id: str, raw: Dict[str, Any], expected_order: int) -> ExpectedStroke:
    where = f"character '{char_id}' stroke {expected_order}"
    order = int(raw.get("order", expected_order))
    if order != expected_order:
        raise ValueError(f"{where}: order {order} out of sequence")
    try:
        stroke_type = StrokeType.parse(raw["type"])
    except KeyError:
        raise ValueError(f"{where}: missing type") from None
    except ValueError as e:
        raise ValueError(f"{where}: {e}") from None
    name = str(raw.get("name") or stroke_type.base_pinyin)
    path_raw = raw.get("path") or []
    try:
        path = tuple((float(p[0]), float(p[1])) for p in path_raw)
    except (TypeError, IndexError, ValueError):
        raise ValueError(f"{where}: path must be a list of [x, y] pairs") from None
    if not path:
        raise ValueError(f"{where}: path has no points")

    bbox_raw = raw.get("bounding_box")
    if bbox_raw is None:
        bbox = Rect.of(path)
    else:
        if len(bbox_raw) != 4:
            raise ValueError(
                f"{where}: bounding_box must contain exactly 4 values (x, y, width, height), found {len(bbox_raw)}"
            )
        bbox = Rect(*(float(v) for v in bbox_raw))
    return ExpectedStroke(order=order, stroke_type=stroke_type, name=name, path=path, bounding_box=bbox)


def parse_character(raw: Dict[str, Any]) -> Character:
    char_id = str(raw.get("id") or raw.get("glyph") or "")
    if not char_id:
        raise ValueError("character entry without id")
    strokes_raw = raw.get("strokes") or []
    strokes = tuple(_parse_stroke(char_id, s or {}, i + 1) for i, s in enumerate(strokes_raw))
    return Character(
        id=char_id,
        glyph=str(raw.get("glyph", char_id)),
        pinyin=str(raw.get("pinyin", "")),
        meaning=str(raw.get("meaning", "")),
        strokes=strokes,
        difficulty=int(raw.get("difficulty", 1)),
        tags=tuple(str(t) for t in (raw.get("tags") or [])),
    )


def load_characters(path: Optional[str] = None) -> List[Character]:
    p = path or _default_characters_path()
    with open(p, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return [parse_character(c or {}) for c in (data.get("characters") or [])]


def list_characters(path: Optional[str] = None) -> List[Dict[str, Any]]:
    items = []
    for c in load_characters(path):
        items.append({"id": c.id, "glyph": c.glyph, "pinyin": c.pinyin, "meaning": c.meaning, "strokes": c.stroke_count})
    return items


def get_character(char_id: str, path: Optional[str] = None) -> Character:
    """Look up by id or by glyph."""
    for c in load_characters(path):
        if char_id in (c.id, c.glyph):
            return c
    raise KeyError(f"Unknown character: {char_id}")
