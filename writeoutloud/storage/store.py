from __future__ import annotations

"""Parquet-backed store for per-stroke results using pandas + pyarrow.

Unit of data: one row per scored stroke (session x stroke index).
"""

from datetime import datetime
from pathlib import Path
from typing import Iterable, List

import pandas as pd

from ..models.attempt import StrokeResult
from .schema import DTYPES, StrokeResultRow

DATA_FILE = "stroke_results.parquet"


def _empty_df() -> pd.DataFrame:
    return pd.DataFrame({k: pd.Series(dtype=v) for k, v in DTYPES.items()})


def init_store(data_dir: Path) -> None:
    """Ensure data directory and an empty Parquet file with correct schema exist."""
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    stats_path = data_dir / DATA_FILE
    if not stats_path.exists():
        _empty_df().to_parquet(stats_path, engine="pyarrow", compression="zstd", index=False)


def rows_from_results(
    results: Iterable[StrokeResult],
    *,
    session_id: str,
    session_start: datetime,
    character: str,
) -> List[StrokeResultRow]:
    rows: List[StrokeResultRow] = []
    for r in results:
        rows.append(
            StrokeResultRow(
                session_id=session_id,
                session_start=session_start,
                character=character,
                stroke_index=r.index,
                stroke_type=r.stroke_type.value,
                shape_accuracy=r.shape_accuracy,
                concurrency_score=r.concurrency_score,
                outcome=r.outcome.value,
                speech_attempted=r.speech_attempted,
                transcript=r.speech.transcript if r.speech is not None else None,
                stroke_ms=int(round(max(0.0, r.stroke_ended_at - r.stroke_started_at) * 1000)),
            )
        )
    return rows


def _fix_dtypes(df: pd.DataFrame) -> pd.DataFrame:
    for col, dt in DTYPES.items():
        if col not in df.columns:
            df[col] = pd.NA
        df[col] = df[col].astype(dt)
    return df[list(DTYPES.keys())]


def validate_records(records: list[StrokeResultRow]) -> pd.DataFrame:
    """Validate rows and return a DataFrame with the store's dtypes."""
    if not isinstance(records, list):
        raise TypeError("records must be a list[StrokeResultRow]")
    rows = [r if isinstance(r, StrokeResultRow) else StrokeResultRow.model_validate(r) for r in records]
    df = pd.DataFrame([r.model_dump() for r in rows])
    return _fix_dtypes(df)


def append_stroke_results(df_new: pd.DataFrame, data_path: Path) -> None:
    """Append rows, dropping exact duplicates, and write back with zstd."""
    f = Path(data_path) / DATA_FILE
    if f.exists():
        df_old = pd.read_parquet(f, engine="pyarrow")
    else:
        df_old = _empty_df()
    frames = [_fix_dtypes(df_old), _fix_dtypes(df_new.copy())]
    frames = [x for x in frames if not x.empty]
    if not frames:
        return
    combined = _fix_dtypes(pd.concat(frames, ignore_index=True))
    combined = combined.drop_duplicates()
    f.parent.mkdir(parents=True, exist_ok=True)
    combined.to_parquet(f, engine="pyarrow", compression="zstd", index=False)


def load_all(data_path: Path) -> pd.DataFrame:
    f = Path(data_path) / DATA_FILE
    if not f.exists():
        return _empty_df()
    return _fix_dtypes(pd.read_parquet(f, engine="pyarrow"))


def export_ndjson(df: pd.DataFrame, out_path: Path) -> None:
    """Export a DataFrame to line-delimited JSON (NDJSON) for quick inspection."""
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    df.to_json(out_path, orient="records", lines=True, date_format="iso")
