"""
Analysis session: the context object that owns one dataset while it is
being explored.

The session keeps the original rows, the working rows and everything
derived from them (summary, cleaning issues, assistant, lineage). Any
operation that changes the working rows rebuilds the derived state, so the
summary and issues always describe the rows currently on screen.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .cleaning import CleaningMode, CleaningResult, DataCleaner
from .csv_parser import parse_records
from .drill_down import SegmentComparison, compare_segments, get_breadcrumb
from .file_utils import FileHandler
from .insights import DataAssistant
from .lineage import LineageTracker
from .models import Answer, CleaningIssues, DatasetSummary, FilterPredicate, Row
from .quality_profiler import (
    ColumnProfile, DataProfiler, DataQualityReport, DatasetProfile,
    build_dataset_summary, derive_cleaning_issues, generate_column_profiles,
    generate_quality_report
)
from .query_builder import ExecutionResult, QueryConfig, apply_filters, execute_query

logger = logging.getLogger(__name__)


class AnalysisSession:
    """One loaded dataset plus the state derived from it."""

    def __init__(self,
                 headers: Sequence[str],
                 rows: Sequence[Row],
                 name: str = 'data',
                 file_handler: Optional[FileHandler] = None,
                 cleaner: Optional[DataCleaner] = None,
                 lineage: Optional[LineageTracker] = None):
        self.name = name
        self.headers: List[str] = list(headers)
        self.original_rows: List[Row] = [dict(row) for row in rows]
        self.rows: List[Row] = [dict(row) for row in rows]
        self.file_handler = file_handler or FileHandler()
        self.cleaner = cleaner or DataCleaner()
        self.profiler = DataProfiler()
        self.lineage = lineage or LineageTracker()
        self.active_filters: List[Dict[str, Any]] = []

        self.lineage.initialize(len(self.rows), name)
        self._refresh()

    @classmethod
    def from_file(cls, file_path: Union[str, Path], **kwargs) -> 'AnalysisSession':
        """
        Load a CSV file into a new session.

        Raises:
            CsvAnalysisError: If the file cannot be read or has no header row
        """
        file_handler = kwargs.pop('file_handler', None) or FileHandler()
        dataset = file_handler.load_csv(file_path)
        return cls(dataset.headers, dataset.rows, name=dataset.name,
                   file_handler=file_handler, **kwargs)

    @classmethod
    def from_text(cls, text: str, name: str = 'data', **kwargs) -> 'AnalysisSession':
        headers, rows = parse_records(text)
        return cls(headers, rows, name=name, **kwargs)

    def _refresh(self) -> None:
        self._summary = build_dataset_summary(self.headers, self.rows)
        self._issues = derive_cleaning_issues(self._summary)
        self.assistant = DataAssistant(self.rows, self.headers, self._summary)
        logger.debug(f"Session state rebuilt: {len(self.rows)} rows")

    def _replace_rows(self, rows: Sequence[Row]) -> None:
        self.rows = list(rows)
        self._refresh()

    # =================== Derived state ===================

    @property
    def summary(self) -> DatasetSummary:
        return self._summary

    @property
    def issues(self) -> CleaningIssues:
        return self._issues

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def quality_report(self) -> DataQualityReport:
        return generate_quality_report(self.rows, self.headers, self._summary)

    def column_profiles(self) -> List[ColumnProfile]:
        return generate_column_profiles(self.rows, self.headers, self.profiler.top_n, self._summary)

    def profile(self) -> DatasetProfile:
        return self.profiler.profile(self.headers, self.rows, self.name)

    @property
    def breadcrumb(self) -> str:
        return get_breadcrumb(self.active_filters)

    # =================== Questions and queries ===================

    def ask(self, question: str) -> Answer:
        """Answer a natural-language question about the working rows."""
        return self.assistant.ask(question)

    def query(self, config: Union[QueryConfig, Dict[str, Any]]) -> ExecutionResult:
        """Run a builder query; the working rows are left unchanged."""
        if isinstance(config, dict):
            config = QueryConfig.from_dict(config)
        result = execute_query(self.rows, config)
        if config.group_by is not None:
            logger.info(f"Aggregated {len(self.rows)} rows by {config.group_by.column} "
                        f"into {result.row_count} groups")
        return result

    def compare(self,
                column: str,
                value1: Any,
                value2: Any,
                analyze_column: Optional[str] = None) -> SegmentComparison:
        return compare_segments(self.rows, column, value1, value2, analyze_column)

    # =================== Mutations ===================

    def filter(self, filters: Sequence[FilterPredicate]) -> int:
        """
        Narrow the working rows to those matching every filter.

        Returns:
            Number of rows kept
        """
        previous = len(self.rows)
        kept = apply_filters(self.rows, filters)
        description = ' AND '.join(f.describe() for f in filters) or 'no filters'
        self.lineage.record_filter(f"Filtered: {description}", previous, len(kept),
                                   {'filters': [f.describe() for f in filters]})
        for predicate in filters:
            self.active_filters.append({'column': predicate.column, 'value': predicate.value})
        self._replace_rows(kept)
        return len(kept)

    def reset(self) -> None:
        """Go back to the rows as they were loaded."""
        previous = len(self.rows)
        self.active_filters = []
        self.lineage.record_transformation('Reset to original data', len(self.original_rows), previous)
        self._replace_rows([dict(row) for row in self.original_rows])

    def clean(self, mode: Union[CleaningMode, str] = CleaningMode.AUTO) -> CleaningResult:
        """Clean the working rows in place of the current ones."""
        result = self.cleaner.clean(self.rows, self.headers, self._summary, mode)
        changes = ', '.join(f"{key}={value}" for key, value in result.changes.items())
        self.lineage.record_transformation(
            f"Cleaned data ({result.mode}): {changes}",
            result.rows_after,
            result.rows_before,
            dict(result.changes),
        )
        self.rows = result.rows
        self._summary = result.summary
        self._issues = result.issues
        self.assistant = DataAssistant(self.rows, self.headers, self._summary)
        return result

    def impute(self) -> CleaningResult:
        """Fill missing cells from column medians and most frequent values."""
        result = self.cleaner.impute_statistical(self.rows, self.headers, self._summary)
        self.lineage.record_transformation(
            f"Imputed {result.changes['missing_filled']} missing cells",
            result.rows_after,
            result.rows_before,
            dict(result.changes),
        )
        self._replace_rows(result.rows)
        return result

    def export(self, output_path: Union[str, Path], include_lineage: bool = False) -> Path:
        """
        Write the working rows to ``output_path`` (format from the extension).

        Raises:
            UnsupportedFileFormatError: For an unknown output extension
            ExportError: If writing fails
        """
        output_path = Path(output_path)
        comments = None
        if include_lineage:
            comments = [f"Source: {self.name}", f"Trust score: {self.lineage.trust_score()}/100"]
            comments += [event.description for event in self.lineage.events]
        written = self.file_handler.save_rows(self.rows, self.headers, output_path, comments)
        self.lineage.record_export(output_path.suffix.lstrip('.'), len(self.rows))
        return written
