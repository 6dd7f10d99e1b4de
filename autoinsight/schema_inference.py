"""
Schema inference for untyped CSV columns.

Each column is classified as number, date or string from a sample of its
non-empty values. Missing and invalid counts are then computed over the whole
column against the inferred type. Invalid values are data, not errors: nothing
in this module raises for bad input.
"""

import logging
import math
import warnings
from functools import lru_cache
from typing import Any, Iterable, List, Optional, Sequence

import pandas as pd
from tqdm import tqdm

from .config import (
    TYPE_SAMPLE_SIZE, NUMBER_RATIO_THRESHOLD, DATE_RATIO_THRESHOLD,
    DATE_NUMERIC_GUARD, EMPTY_TOKENS, NUMBER_STRIP_CHARS
)
from .models import (
    CellKind, ColumnSchema, Row, TYPE_DATE, TYPE_NUMBER, TYPE_STRING,
    classify_cell, format_cell
)

logger = logging.getLogger(__name__)


def is_empty(value: Any) -> bool:
    """True for None/NaN and for blank, "null", "nan" or "none" text."""
    kind = classify_cell(value)
    if kind is CellKind.MISSING:
        return True
    if kind is CellKind.NUMBER:
        return False
    return str(value).strip().lower() in EMPTY_TOKENS


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a cell as a finite number.

    Thousands separators and dollar signs are stripped first, so
    ``"$1,234.56"`` parses to ``1234.56``.

    Returns:
        The number, or None when the value is empty or not numeric
    """
    kind = classify_cell(value)
    if kind is CellKind.MISSING:
        return None
    if kind is CellKind.NUMBER:
        number = float(value)
        return number if math.isfinite(number) else None

    text = str(value).strip()
    for char in NUMBER_STRIP_CHARS:
        text = text.replace(char, '')
    if not text or '_' in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


@lru_cache(maxsize=65536)
def _parse_date_text(text: str) -> Optional[str]:
    try:
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            parsed = pd.to_datetime(text, errors='coerce')
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}-{parsed.day:02d}"


def parse_date(value: Any) -> Optional[str]:
    """
    Parse a cell as a calendar date.

    Returns:
        Canonical ``YYYY-MM-DD`` text, or None when the value is not a date
    """
    if is_empty(value):
        return None
    return _parse_date_text(format_cell(value).strip())


def is_valid_for_type(value: Any, column_type: str) -> bool:
    """Whether a non-empty value parses as the given column type."""
    if column_type == TYPE_NUMBER:
        return parse_number(value) is not None
    if column_type == TYPE_DATE:
        return parse_date(value) is not None
    return True


def infer_column_type(values: Iterable[Any], sample_size: int = TYPE_SAMPLE_SIZE) -> str:
    """
    Classify a column from its first non-empty values.

    Numbers win when at least 85% of the sample is numeric. A column is a date
    column when at least 85% parses as a date and less than half is numeric,
    since plain numbers often also parse as dates. Everything else is a string.
    """
    sample: List[Any] = []
    for value in values:
        if is_empty(value):
            continue
        sample.append(value)
        if len(sample) >= sample_size:
            break

    if not sample:
        return TYPE_STRING

    numeric_ok = sum(1 for v in sample if parse_number(v) is not None)
    date_ok = sum(1 for v in sample if parse_date(v) is not None)
    num_ratio = numeric_ok / len(sample)
    date_ratio = date_ok / len(sample)

    if num_ratio >= NUMBER_RATIO_THRESHOLD:
        return TYPE_NUMBER
    if date_ratio >= DATE_RATIO_THRESHOLD and num_ratio < DATE_NUMERIC_GUARD:
        return TYPE_DATE
    return TYPE_STRING


def count_missing(values: Iterable[Any]) -> int:
    """Count empty cells over the whole column."""
    return sum(1 for v in values if is_empty(v))


def count_invalid(values: Iterable[Any], expected_type: str) -> int:
    """Count non-empty cells that do not parse as ``expected_type``."""
    if expected_type == TYPE_STRING:
        return 0
    return sum(
        1 for v in values
        if not is_empty(v) and not is_valid_for_type(v, expected_type)
    )


def column_values(records: Sequence[Row], column: str) -> List[Any]:
    """All cells of one column, in row order."""
    return [record.get(column) for record in records]


def infer_column_schema(name: str, values: Sequence[Any]) -> ColumnSchema:
    """Infer type plus missing/invalid counts for one column."""
    inferred = infer_column_type(values)
    return ColumnSchema(
        name=name,
        inferred_type=inferred,
        missing_count=count_missing(values),
        invalid_count=count_invalid(values, inferred),
    )


def infer_schema(headers: Sequence[str],
                 records: Sequence[Row],
                 show_progress: bool = False) -> List[ColumnSchema]:
    """
    Infer a schema entry for every column, in header order.

    Args:
        headers: Column names in display order
        records: Rows keyed by header
        show_progress: Show a progress bar over columns

    Returns:
        One ColumnSchema per header
    """
    schema: List[ColumnSchema] = []
    columns = tqdm(headers, desc="Inferring schema", unit="col") if show_progress else headers
    for name in columns:
        schema.append(infer_column_schema(name, column_values(records, name)))

    logger.debug(
        "Inferred schema: %s",
        ', '.join(f"{c.name}={c.inferred_type}" for c in schema)
    )
    return schema
