"""
Data quality profiling for parsed CSV datasets.

Builds the dataset summary (schema, outliers, duplicates), the cleaning-issue
view derived from it, a weighted quality report and per-column profiles.
Every result is recomputed from the rows it is given; nothing here is cached
or patched in place.
"""

import json
import logging
import warnings
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Any, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import stats
from tqdm import tqdm

from .config import (
    IQR_MULTIPLIER, MIXED_TYPE_VALIDITY, PROFILE_TOP_VALUES, QUALITY_ISSUE_THRESHOLDS,
    QUALITY_WEIGHTS, SIGNATURE_SEPARATOR, ZSCORE_HIGH, ZSCORE_MEDIUM, ZSCORE_THRESHOLD
)
from .exceptions import ExportError
from .models import (
    CleaningIssues, ColumnSchema, DatasetSummary, Row,
    TYPE_DATE, TYPE_NUMBER, classify_cell, format_cell
)
from .schema_inference import column_values, infer_schema, is_empty, parse_number
from . import statistics_utils


# =================== Result types ===================

@dataclass
class OutlierResult:
    """IQR fences plus the flagged values and their positions."""
    q1: float = 0.0
    q3: float = 0.0
    iqr: float = 0.0
    lower_bound: float = 0.0
    upper_bound: float = 0.0
    outlier_indices: List[int] = field(default_factory=list)
    outliers: List[float] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.outliers)


@dataclass
class DataQualityReport:
    """
    Dataset quality scores, all percentages in [0, 100].

    ``overall_score`` is a weighted heuristic (see ``QUALITY_WEIGHTS``);
    consistency, accuracy and timeliness are fixed placeholders.
    """
    overall_score: int
    completeness: int
    uniqueness: int
    validity: int
    consistency: int = 100
    accuracy: int = 95
    timeliness: int = 90
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall_score': self.overall_score,
            'completeness': self.completeness,
            'uniqueness': self.uniqueness,
            'validity': self.validity,
            'consistency': self.consistency,
            'accuracy': self.accuracy,
            'timeliness': self.timeliness,
            'issues': list(self.issues),
            'recommendations': list(self.recommendations),
        }


@dataclass
class ColumnProfile:
    """Descriptive profile of a single column."""
    name: str
    inferred_type: str
    non_null: int
    null: int
    unique: int
    duplicates: int
    missing_rate: float
    cardinality_ratio: float
    top_values: List[Tuple[str, int]] = field(default_factory=list)
    mode: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    median: Optional[float] = None
    stdev: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.inferred_type,
            'non_null': self.non_null,
            'null': self.null,
            'unique': self.unique,
            'duplicates': self.duplicates,
            'min': self.min,
            'max': self.max,
            'mean': self.mean,
            'median': self.median,
            'stdev': self.stdev,
            'mode': self.mode,
            'top_values': [{'value': v, 'count': c} for v, c in self.top_values],
            'missing_rate': self.missing_rate,
            'cardinality_ratio': self.cardinality_ratio,
        }


@dataclass
class DatasetProfile:
    """Everything the profiler knows about one dataset snapshot."""
    summary: DatasetSummary
    issues: CleaningIssues
    report: DataQualityReport
    column_profiles: List[ColumnProfile] = field(default_factory=list)
    profiled_at: str = field(default_factory=lambda: datetime.now().isoformat())
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dataset_info': {
                'source': self.source,
                'total_rows': self.summary.row_count,
                'total_columns': self.summary.column_count,
                'duplicate_rows': self.summary.duplicate_row_count,
            },
            'summary': self.summary.to_dict(),
            'cleaning_issues': self.issues.to_dict(),
            'quality_report': self.report.to_dict(),
            'column_profiles': [p.to_dict() for p in self.column_profiles],
            'profiling_metadata': {'profiled_at': self.profiled_at},
        }


# =================== Duplicates ===================

def row_signature(row: Row, headers: Sequence[str]) -> str:
    """Ordered join of every cell's text, used as the duplicate key."""
    return SIGNATURE_SEPARATOR.join(format_cell(row.get(h)).strip() for h in headers)


def duplicate_stats(rows: Sequence[Row], headers: Sequence[str]) -> Tuple[int, Dict[str, int]]:
    """
    Count extra copies of repeated rows.

    Returns:
        ``(duplicate_row_count, {signature: occurrences})`` where the mapping
        only holds signatures seen more than once
    """
    counts = Counter(row_signature(row, headers) for row in rows)
    repeated = {sig: count for sig, count in counts.items() if count > 1}
    duplicate_count = sum(count - 1 for count in repeated.values())
    return duplicate_count, repeated


def count_duplicates(rows: Sequence[Row], headers: Sequence[str]) -> int:
    return duplicate_stats(rows, headers)[0]


# =================== Outliers ===================

def numeric_column(rows: Sequence[Row], column: str) -> List[Tuple[int, float]]:
    """``(row_index, value)`` pairs for the cells of ``column`` that parse as numbers."""
    pairs = []
    for index, row in enumerate(rows):
        number = parse_number(row.get(column))
        if number is not None:
            pairs.append((index, number))
    return pairs


def detect_outliers_iqr(values: Sequence[float], multiplier: float = IQR_MULTIPLIER) -> OutlierResult:
    """
    Flag values strictly outside ``[Q1 - k*IQR, Q3 + k*IQR]``.

    Quartiles are index based (no interpolation), so a value sitting exactly
    on a fence is kept.
    """
    if not values:
        return OutlierResult()

    quarts = statistics_utils.quartiles(values)
    lower = quarts['q1'] - multiplier * quarts['iqr']
    upper = quarts['q3'] + multiplier * quarts['iqr']

    indices = [i for i, v in enumerate(values) if v < lower or v > upper]
    return OutlierResult(
        q1=quarts['q1'],
        q3=quarts['q3'],
        iqr=quarts['iqr'],
        lower_bound=lower,
        upper_bound=upper,
        outlier_indices=indices,
        outliers=[float(values[i]) for i in indices],
    )


def _zscore_severity(z: float) -> str:
    magnitude = abs(z)
    if magnitude > ZSCORE_HIGH:
        return 'high'
    if magnitude > ZSCORE_MEDIUM:
        return 'medium'
    return 'low'


def detect_anomalies_zscore(rows: Sequence[Row],
                            column: str,
                            threshold: float = ZSCORE_THRESHOLD) -> List[Dict[str, Any]]:
    """
    Flag numeric cells whose population z-score exceeds ``threshold``.

    Returns:
        Anomalies sorted by ``|z|`` descending, each with row index, value,
        z-score and severity
    """
    pairs = numeric_column(rows, column)
    if len(pairs) < 2:
        return []

    values = np.array([v for _, v in pairs], dtype=float)
    if values.std() == 0:
        return []

    with warnings.catch_warnings():
        warnings.simplefilter('ignore', category=RuntimeWarning)
        scores = stats.zscore(values)

    anomalies = []
    for (row_index, value), z in zip(pairs, scores):
        if abs(z) > threshold:
            anomalies.append({
                'row_index': row_index,
                'column': column,
                'value': value,
                'z_score': round(float(z), 2),
                'severity': _zscore_severity(float(z)),
            })

    anomalies.sort(key=lambda a: abs(a['z_score']), reverse=True)
    return anomalies


# =================== Summary and issues ===================

def build_dataset_summary(headers: Sequence[str],
                          rows: Sequence[Row],
                          show_progress: bool = False) -> DatasetSummary:
    """
    Rebuild the dataset summary from the current rows.

    Args:
        headers: Column names in display order
        rows: Records keyed by header
        show_progress: Show a progress bar while inferring column types

    Returns:
        DatasetSummary with schema, IQR outlier counts on number columns and
        the duplicate row count
    """
    columns = infer_schema(headers, rows, show_progress=show_progress)
    for column in columns:
        if column.inferred_type == TYPE_NUMBER:
            values = [v for _, v in numeric_column(rows, column.name)]
            column.outlier_count = detect_outliers_iqr(values).count

    return DatasetSummary(
        row_count=len(rows),
        column_count=len(headers),
        columns=columns,
        duplicate_row_count=count_duplicates(rows, headers),
    )


def derive_cleaning_issues(summary: DatasetSummary) -> CleaningIssues:
    """Bucket the summary's columns into the issues that cleaning can address."""
    return CleaningIssues(
        missing_values=[c for c in summary.columns if c.missing_count > 0],
        invalid_types=[c for c in summary.columns if c.invalid_count > 0],
        outliers=[c for c in summary.columns if c.outlier_count > 0],
        duplicates=summary.duplicate_row_count,
    )


# =================== Quality report ===================

def _cell_kinds(rows: Sequence[Row], column: str) -> set:
    return {
        classify_cell(row.get(column))
        for row in rows
        if not is_empty(row.get(column))
    }


def generate_quality_report(rows: Sequence[Row],
                            headers: Sequence[str],
                            summary: Optional[DatasetSummary] = None) -> DataQualityReport:
    """
    Score completeness, uniqueness and validity and list the issues found.

    Validity is an estimate: a column whose non-empty cells share one storage
    kind counts every row as valid, a mixed column counts
    ``MIXED_TYPE_VALIDITY`` of its rows. The weights are tunable heuristics.

    Args:
        rows: Records keyed by header
        headers: Column names
        summary: Optional summary; enables the outlier issue

    Returns:
        DataQualityReport
    """
    if not rows or not headers:
        return DataQualityReport(
            overall_score=0,
            completeness=0,
            uniqueness=0,
            validity=0,
            issues=['No data to analyze'],
            recommendations=['Upload a CSV file'],
        )

    total_rows = len(rows)
    total_cells = total_rows * len(headers)

    null_cells = sum(1 for row in rows for h in headers if is_empty(row.get(h)))
    completeness = round((total_cells - null_cells) / total_cells * 100)

    duplicate_count, _ = duplicate_stats(rows, headers)
    unique_rows = total_rows - duplicate_count
    uniqueness = round(unique_rows / total_rows * 100)

    valid_cells = 0
    for header in headers:
        if len(_cell_kinds(rows, header)) <= 1:
            valid_cells += total_rows
        else:
            valid_cells += round(total_rows * MIXED_TYPE_VALIDITY)
    validity = round(valid_cells / total_cells * 100)

    overall = round(
        completeness * QUALITY_WEIGHTS['completeness']
        + uniqueness * QUALITY_WEIGHTS['uniqueness']
        + validity * QUALITY_WEIGHTS['validity']
        + 100 * QUALITY_WEIGHTS['flat']
    )

    issues: List[str] = []
    recommendations: List[str] = []

    if completeness < QUALITY_ISSUE_THRESHOLDS['completeness']:
        issues.append(f"Low completeness ({completeness}%) - {null_cells} missing values found")
        recommendations.append('Fill missing values with appropriate strategies')

    if uniqueness < QUALITY_ISSUE_THRESHOLDS['uniqueness']:
        issues.append(f"{duplicate_count} duplicate rows detected")
        recommendations.append('Remove duplicate rows to improve data quality')

    if validity < QUALITY_ISSUE_THRESHOLDS['validity']:
        issues.append('Some columns have inconsistent data types')
        recommendations.append('Review and correct invalid type entries')

    if summary is not None and any(c.outlier_count > 0 for c in summary.columns):
        issues.append('Outliers detected in numeric columns')
        recommendations.append('Review outliers - they may be errors or valid edge cases')

    if not issues:
        recommendations.append('Data quality is excellent - ready for analysis')

    return DataQualityReport(
        overall_score=max(0, min(100, overall)),
        completeness=completeness,
        uniqueness=uniqueness,
        validity=validity,
        issues=issues,
        recommendations=recommendations,
    )


# =================== Column profiles ===================

def frequency_table(values: Sequence[Any]) -> List[Tuple[str, int]]:
    """
    Case-insensitive value counts, most frequent first.

    Each entry is displayed with the first spelling seen for its key.
    """
    counts: Counter = Counter()
    display: Dict[str, str] = {}
    for value in values:
        text = format_cell(value).strip()
        key = text.casefold()
        display.setdefault(key, text)
        counts[key] += 1
    return [(display[key], count) for key, count in counts.most_common()]


def _profile_column(rows: Sequence[Row], column: ColumnSchema, top_n: int) -> ColumnProfile:
    values = column_values(rows, column.name)
    present = [v for v in values if not is_empty(v)]
    frequencies = frequency_table(present)
    unique = len(frequencies)

    profile = ColumnProfile(
        name=column.name,
        inferred_type=column.inferred_type,
        non_null=len(present),
        null=len(values) - len(present),
        unique=unique,
        duplicates=len(present) - unique,
        missing_rate=round((len(values) - len(present)) / len(values) * 100, 1) if values else 0.0,
        cardinality_ratio=round(unique / len(present) * 100, 1) if present else 0.0,
        top_values=frequencies[:top_n],
        mode=frequencies[0][0] if frequencies else None,
    )

    if column.inferred_type == TYPE_NUMBER:
        numbers = [n for n in (parse_number(v) for v in present) if n is not None]
        if numbers:
            described = statistics_utils.describe(numbers)
            profile.min = round(described['min'], 2)
            profile.max = round(described['max'], 2)
            profile.mean = round(described['mean'], 2)
            profile.median = round(described['median'], 2)
            profile.stdev = round(described['stdev'], 2)

    return profile


def generate_column_profiles(rows: Sequence[Row],
                             headers: Sequence[str],
                             top_n: int = PROFILE_TOP_VALUES,
                             summary: Optional[DatasetSummary] = None) -> List[ColumnProfile]:
    """Profile every column in header order."""
    if not rows:
        return []
    schema = summary.columns if summary is not None else infer_schema(headers, rows)
    return [_profile_column(rows, column, top_n) for column in schema]


def generate_data_dictionary(rows: Sequence[Row], headers: Sequence[str]) -> Dict[str, Any]:
    """Column names, types, examples and counts for documentation."""
    labels = {TYPE_NUMBER: 'Numeric', TYPE_DATE: 'Date/Time'}
    profiles = generate_column_profiles(rows, headers)
    return {
        'columns': [
            {
                'name': p.name,
                'type': p.inferred_type,
                'description': f"{labels.get(p.inferred_type, 'Text')} column with {p.unique} unique values",
                'examples': [value for value, _ in p.top_values[:3]],
                'null_count': p.null,
                'unique_count': p.unique,
            }
            for p in profiles
        ],
        'row_count': len(rows),
        'column_count': len(headers),
        'generated_at': datetime.now().isoformat(),
    }


# =================== Profiler service ===================

def convert_numpy_types(obj: Any) -> Any:
    """Recursively convert numpy scalars and arrays to native Python types."""
    if isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {k: convert_numpy_types(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy_types(item) for item in obj]
    else:
        return obj


class DataProfiler:
    """
    Profiles a dataset snapshot into summary, issues, quality report and
    column profiles.
    """

    def __init__(self, show_progress: bool = False, top_n: int = PROFILE_TOP_VALUES):
        """
        Initialize DataProfiler.

        Args:
            show_progress: Show tqdm progress bars over columns
            top_n: Number of top values kept per column profile
        """
        self.show_progress = show_progress
        self.top_n = top_n
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        """Set up logging for profiling operations."""
        logger = logging.getLogger(f"{__name__}.DataProfiler")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(logging.INFO)
        # Prevent duplicate logs by stopping propagation to root logger
        logger.propagate = False
        return logger

    def profile(self,
                headers: Sequence[str],
                rows: Sequence[Row],
                source: Optional[str] = None) -> DatasetProfile:
        """
        Generate the complete profile of a dataset.

        Args:
            headers: Column names in display order
            rows: Records keyed by header
            source: Optional label (usually the file name)

        Returns:
            DatasetProfile
        """
        self.logger.info(f"Profiling dataset: {len(rows):,} rows, {len(headers)} columns")

        summary = build_dataset_summary(headers, rows, show_progress=self.show_progress)
        issues = derive_cleaning_issues(summary)
        report = generate_quality_report(rows, headers, summary)

        profiles: List[ColumnProfile] = []
        if rows:
            columns = summary.columns
            if self.show_progress:
                columns = tqdm(columns, desc="Profiling columns", unit="col")
            profiles = [_profile_column(rows, column, self.top_n) for column in columns]

        self.logger.info(
            f"Profiling completed: quality score {report.overall_score}/100, "
            f"{issues.total_issues} issues"
        )
        return DatasetProfile(
            summary=summary,
            issues=issues,
            report=report,
            column_profiles=profiles,
            source=source,
        )

    def export_profile(self, profile: DatasetProfile, export_path: Union[str, Path]) -> Path:
        """Export profile to a JSON file."""
        export_path = Path(export_path)
        json_ready_profile = convert_numpy_types(profile.to_dict())
        try:
            export_path.parent.mkdir(parents=True, exist_ok=True)
            with open(export_path, 'w', encoding='utf-8') as f:
                json.dump(json_ready_profile, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            raise ExportError(f"Failed to write profile: {e}", str(export_path)) from e

        self.logger.info(f"Data profile exported to: {export_path}")
        return export_path

    def generate_profile_summary(self, profile: DatasetProfile) -> str:
        """Generate a human-readable summary of the profile."""
        summary = profile.summary
        report = profile.report

        text = f"""
📊 DATA PROFILE SUMMARY
=======================

📁 Dataset: {profile.source or 'Unknown'}
📏 Size: {summary.row_count:,} rows × {summary.column_count} columns
🔁 Duplicate rows: {summary.duplicate_row_count}
🎯 Overall Quality Score: {report.overall_score}/100

📈 QUALITY BREAKDOWN:
  ✅ Completeness: {report.completeness}%
  🧬 Uniqueness: {report.uniqueness}%
  ✔️  Validity: {report.validity}%
"""

        text += "\n🧾 COLUMNS:\n"
        for column in summary.columns:
            text += (
                f"  • {column.name} ({column.inferred_type}): "
                f"{column.missing_count} missing, {column.invalid_count} invalid, "
                f"{column.outlier_count} outliers\n"
            )

        if report.issues:
            text += "\n🚨 ISSUES:\n"
            for issue in report.issues:
                text += f"  • {issue}\n"

        text += "\n💡 RECOMMENDATIONS:\n"
        for recommendation in report.recommendations:
            text += f"  • {recommendation}\n"

        return text
