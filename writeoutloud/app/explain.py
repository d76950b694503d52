from __future__ import annotations

"""Minimal tracing helpers (Explain Mode).

Enable with the CLI flag and emit terse, readable lines at milestones:
dropped events, rejected draws, timer expiries and score breakdowns.
"""

import json
from enum import Enum
from typing import Any, Dict

_ENABLED = False


def enable(flag: bool = True) -> None:
    global _ENABLED
    _ENABLED = bool(flag)


def enabled() -> bool:
    return _ENABLED


def _default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def trace(event: str, payload: Dict[str, Any] | None = None) -> None:
    if not _ENABLED:
        return
    data = payload or {}
    # keep it short; one line JSON
    print(f"[EXPLAIN] {event} :: {json.dumps(data, separators=(',', ':'), default=_default, ensure_ascii=False)}")
