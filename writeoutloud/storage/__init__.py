from .schema import DTYPES, OUTCOMES, STROKE_TYPES, StrokeResultRow
from .store import (
    append_stroke_results,
    export_ndjson,
    init_store,
    load_all,
    rows_from_results,
    validate_records,
)

__all__ = [
    "DTYPES",
    "OUTCOMES",
    "STROKE_TYPES",
    "StrokeResultRow",
    "append_stroke_results",
    "export_ndjson",
    "init_store",
    "load_all",
    "rows_from_results",
    "validate_records",
]
