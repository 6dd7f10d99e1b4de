"""
Deterministic cleaning passes over a row set.

Three passes, selected by mode: fill missing cells with type placeholders,
coerce invalid cells to their column type, and drop duplicate rows. The
input rows are never modified; every run returns new rows together with a
freshly profiled summary so derived state cannot drift from the data.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .config import UNKNOWN_PLACEHOLDER
from .models import CleaningIssues, DatasetSummary, Row, TYPE_DATE, TYPE_NUMBER
from .quality_profiler import (
    build_dataset_summary, derive_cleaning_issues, frequency_table, row_signature
)
from .schema_inference import is_empty, parse_date, parse_number
from . import statistics_utils


class CleaningMode(Enum):
    AUTO = 'auto'
    MISSING = 'missing'
    INVALID = 'invalid'


@dataclass
class CleaningResult:
    """New rows plus the profile recomputed from them."""
    rows: List[Row]
    headers: List[str]
    mode: str
    summary: DatasetSummary
    issues: CleaningIssues
    rows_before: int
    rows_after: int
    changes: Dict[str, int] = field(default_factory=dict)

    @property
    def rows_removed(self) -> int:
        return self.rows_before - self.rows_after


def fill_missing(rows: Sequence[Row],
                 summary: DatasetSummary,
                 today: str) -> Tuple[List[Row], int]:
    """Replace empty cells with 0, ``today`` or "Unknown" by column type."""
    placeholders = {TYPE_NUMBER: 0, TYPE_DATE: today}
    filled = 0
    cleaned = []
    for row in rows:
        new_row = dict(row)
        for column in summary.columns:
            if column.name in new_row and is_empty(new_row[column.name]):
                new_row[column.name] = placeholders.get(column.inferred_type, UNKNOWN_PLACEHOLDER)
                filled += 1
        cleaned.append(new_row)
    return cleaned, filled


def coerce_invalid(rows: Sequence[Row],
                   summary: DatasetSummary,
                   today: str) -> Tuple[List[Row], int]:
    """
    Coerce non-empty cells to their column type.

    Number cells become floats (0 when unparseable); date cells become
    ``YYYY-MM-DD`` (``today`` when unparseable). Only cells that were
    invalid count as fixed.
    """
    fixed = 0
    cleaned = []
    for row in rows:
        new_row = dict(row)
        for column in summary.columns:
            value = new_row.get(column.name)
            if column.name not in new_row or is_empty(value):
                continue
            if column.inferred_type == TYPE_NUMBER:
                number = parse_number(value)
                if number is None:
                    fixed += 1
                new_row[column.name] = number if number is not None else 0
            elif column.inferred_type == TYPE_DATE:
                canonical = parse_date(value)
                if canonical is None:
                    fixed += 1
                new_row[column.name] = canonical if canonical is not None else today
        cleaned.append(new_row)
    return cleaned, fixed


def drop_duplicates(rows: Sequence[Row], headers: Sequence[str]) -> Tuple[List[Row], int]:
    """Keep the first occurrence of each row signature, preserving order."""
    seen = set()
    kept = []
    for row in rows:
        signature = row_signature(row, headers)
        if signature in seen:
            continue
        seen.add(signature)
        kept.append(row)
    return kept, len(rows) - len(kept)


def impute_statistical(rows: Sequence[Row], summary: DatasetSummary) -> Tuple[List[Row], int]:
    """
    Fill empty cells with the column median (numbers) or most frequent value
    (dates and text). Columns with no values at all are left as they are.
    """
    fills: Dict[str, object] = {}
    for column in summary.columns:
        present = [row.get(column.name) for row in rows if not is_empty(row.get(column.name))]
        if not present:
            continue
        if column.inferred_type == TYPE_NUMBER:
            numbers = [n for n in (parse_number(v) for v in present) if n is not None]
            if numbers:
                fills[column.name] = statistics_utils.median(numbers)
        else:
            fills[column.name] = frequency_table(present)[0][0]

    filled = 0
    cleaned = []
    for row in rows:
        new_row = dict(row)
        for name, value in fills.items():
            if name in new_row and is_empty(new_row[name]):
                new_row[name] = value
                filled += 1
        cleaned.append(new_row)
    return cleaned, filled


class DataCleaner:
    """Applies cleaning passes and re-profiles the result."""

    def __init__(self, today: Optional[Callable[[], date]] = None):
        """
        Initialize DataCleaner.

        Args:
            today: Date provider for date placeholders (defaults to date.today)
        """
        self.today = today or date.today
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        """Set up logging for cleaning operations."""
        logger = logging.getLogger(f"{__name__}.DataCleaner")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(logging.INFO)
        return logger

    def _today(self) -> str:
        return self.today().isoformat()

    def clean(self,
              rows: Sequence[Row],
              headers: Sequence[str],
              summary: Optional[DatasetSummary] = None,
              mode: CleaningMode = CleaningMode.AUTO) -> CleaningResult:
        """
        Clean a row set.

        ``auto`` runs missing, invalid and duplicate passes in that order;
        ``missing`` and ``invalid`` run only their own pass.

        Args:
            rows: Current rows (left untouched)
            headers: Column names in display order
            summary: Summary whose column types drive the passes; profiled
                from ``rows`` when omitted
            mode: CleaningMode or its string value

        Returns:
            CleaningResult with the new rows and their recomputed summary
        """
        mode = CleaningMode(mode)
        headers = list(headers)
        if summary is None:
            summary = build_dataset_summary(headers, rows)

        today = self._today()
        cleaned = [dict(row) for row in rows]
        changes = {'missing_filled': 0, 'invalid_fixed': 0, 'duplicates_removed': 0}

        if mode in (CleaningMode.AUTO, CleaningMode.MISSING):
            cleaned, changes['missing_filled'] = fill_missing(cleaned, summary, today)
            self.logger.info(f"Filled {changes['missing_filled']} missing cells")

        if mode in (CleaningMode.AUTO, CleaningMode.INVALID):
            cleaned, changes['invalid_fixed'] = coerce_invalid(cleaned, summary, today)
            self.logger.info(f"Coerced {changes['invalid_fixed']} invalid cells")

        if mode is CleaningMode.AUTO:
            cleaned, changes['duplicates_removed'] = drop_duplicates(cleaned, headers)
            self.logger.info(f"Removed {changes['duplicates_removed']} duplicate rows")

        return self._result(cleaned, headers, mode.value, len(rows), changes)

    def impute_statistical(self,
                           rows: Sequence[Row],
                           headers: Sequence[str],
                           summary: Optional[DatasetSummary] = None) -> CleaningResult:
        """Median/mode imputation; an alternative to the placeholder fill."""
        headers = list(headers)
        if summary is None:
            summary = build_dataset_summary(headers, rows)
        cleaned, filled = impute_statistical(rows, summary)
        self.logger.info(f"Imputed {filled} missing cells from column statistics")
        return self._result(cleaned, headers, 'statistical', len(rows), {'missing_filled': filled})

    def _result(self, cleaned, headers, mode, rows_before, changes) -> CleaningResult:
        new_summary = build_dataset_summary(headers, cleaned)
        return CleaningResult(
            rows=cleaned,
            headers=headers,
            mode=mode,
            summary=new_summary,
            issues=derive_cleaning_issues(new_summary),
            rows_before=rows_before,
            rows_after=len(cleaned),
            changes=changes,
        )
