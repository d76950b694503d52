from __future__ import annotations

"""Schema constants and Pydantic models for Parquet-backed stroke results."""

from datetime import datetime, timezone
from typing import Optional

import pandas as pd
from pandas.api.types import CategoricalDtype
from pydantic import BaseModel, Field, field_validator

from ..models.attempt import SpeechOutcome
from ..models.stroke_type import StrokeType

# --- Constants ---

STROKE_TYPES = {t.value for t in StrokeType}
OUTCOMES = {o.value for o in SpeechOutcome if o is not SpeechOutcome.PENDING}


def _cat_dtype(categories: set[str]) -> CategoricalDtype:
    return CategoricalDtype(categories=sorted(categories), ordered=False)


DTYPES = {
    "session_id": "string",
    # timezone-aware UTC timestamps
    "session_start": pd.DatetimeTZDtype(tz="UTC"),
    "character": "string",
    "stroke_index": "UInt8",
    "stroke_type": _cat_dtype(STROKE_TYPES),
    "shape_accuracy": "float32",
    "concurrency_score": "float32",
    "outcome": _cat_dtype(OUTCOMES),
    "speech_attempted": "boolean",
    "transcript": "string",
    "stroke_ms": "UInt32",
}


# --- Pydantic models ---


class StrokeResultRow(BaseModel):
    session_id: str
    session_start: datetime
    character: str
    stroke_index: int = Field(ge=0, le=255)
    stroke_type: str
    shape_accuracy: float = Field(ge=0, le=100)
    concurrency_score: float = Field(ge=0, le=100)
    outcome: str
    speech_attempted: bool = False
    transcript: Optional[str] = None
    stroke_ms: int = Field(default=0, ge=0, le=4294967295)

    @field_validator("stroke_type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        if v not in STROKE_TYPES:
            raise ValueError(f"unknown stroke_type {v!r}")
        return v

    @field_validator("outcome")
    @classmethod
    def _final_outcome(cls, v: str) -> str:
        if v not in OUTCOMES:
            raise ValueError(f"outcome must be one of {sorted(OUTCOMES)}")
        return v

    @field_validator("session_start")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)
