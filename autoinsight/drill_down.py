"""
Drill-down and segment comparison over in-memory rows.

Every function recomputes from the rows it is given; nothing is cached.
Segment membership compares the cell's display text with the requested
value, so ``"100"`` and ``100.0`` select the same rows.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, Optional, Sequence, Union

from .config import SEGMENT_SIGNIFICANCE_PERCENT
from .models import Row, format_cell
from .schema_inference import parse_date, parse_number
from . import statistics_utils

logger = logging.getLogger(__name__)

DateLike = Union[str, date]


@dataclass
class SegmentStats:
    name: str
    row_count: int
    mean: Optional[float] = None
    median: Optional[float] = None
    stdev: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass
class SegmentComparison:
    segment1: SegmentStats
    segment2: SegmentStats
    differences: Dict[str, Optional[float]] = field(default_factory=dict)
    is_different_significant: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _matches(cell: Any, value: Any) -> bool:
    return format_cell(cell).strip() == format_cell(value).strip()


def _round(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def _diff(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None or b is None:
        return None
    return round(a - b, 2)


def segment_stats(rows: Sequence[Row], name: str, column: Optional[str] = None) -> SegmentStats:
    """Row count plus numeric stats of ``column`` (when given and numeric)."""
    stats = SegmentStats(name=name, row_count=len(rows))
    if not column:
        return stats

    values = [n for n in (parse_number(row.get(column)) for row in rows) if n is not None]
    if not values:
        return stats

    described = statistics_utils.describe(values)
    stats.mean = _round(described['mean'])
    stats.median = _round(described['median'])
    stats.stdev = _round(described['stdev'])
    stats.min = _round(described['min'])
    stats.max = _round(described['max'])
    return stats


def drill_down_by_value(rows: Sequence[Row], column: str, value: Any) -> Dict[str, Any]:
    """Rows whose ``column`` equals ``value``."""
    filtered = [row for row in rows if _matches(row.get(column), value)]
    return {
        'column': column,
        'value': value,
        'filtered_data': filtered,
        'filter_count': len(filtered),
    }


def compare_segments(rows: Sequence[Row],
                     column: str,
                     value1: Any,
                     value2: Any,
                     analyze_column: Optional[str] = None) -> SegmentComparison:
    """
    Compare two segments of the same column side by side.

    Args:
        rows: Source records
        column: Column defining the segments
        value1: Value selecting the first segment
        value2: Value selecting the second segment
        analyze_column: Optional numeric column to describe per segment

    Returns:
        SegmentComparison; the difference is flagged significant when the row
        counts differ by more than 10% of the second segment
    """
    first = segment_stats([r for r in rows if _matches(r.get(column), value1)],
                          format_cell(value1), analyze_column)
    second = segment_stats([r for r in rows if _matches(r.get(column), value2)],
                           format_cell(value2), analyze_column)

    row_diff = first.row_count - second.row_count
    if second.row_count:
        row_diff_percent = row_diff / second.row_count * 100
    else:
        row_diff_percent = 100.0 if first.row_count else 0.0

    mean_diff_percent = None
    if first.mean is not None and second.mean is not None and second.mean != 0:
        mean_diff_percent = round((first.mean - second.mean) / second.mean * 100, 2)

    comparison = SegmentComparison(
        segment1=first,
        segment2=second,
        differences={
            'row_count_diff': row_diff,
            'row_count_diff_percent': round(row_diff_percent, 2),
            'mean_diff': _diff(first.mean, second.mean),
            'mean_diff_percent': mean_diff_percent,
            'median_diff': _diff(first.median, second.median),
            'stdev_diff': _diff(first.stdev, second.stdev),
        },
        is_different_significant=abs(row_diff_percent) > SEGMENT_SIGNIFICANCE_PERCENT,
    )
    logger.debug(f"Compared segments {value1!r} and {value2!r} on {column}")
    return comparison


def _as_date(value: DateLike) -> Optional[date]:
    if isinstance(value, date):
        return value
    canonical = parse_date(value)
    return date.fromisoformat(canonical) if canonical else None


def time_series_drill(rows: Sequence[Row],
                      date_column: str,
                      start: DateLike,
                      end: DateLike) -> Dict[str, Any]:
    """Rows dated within ``[start, end]`` plus the average per day."""
    start_date, end_date = _as_date(start), _as_date(end)
    if start_date is None or end_date is None:
        return {'filtered_data': [], 'row_count': 0, 'start_date': start_date,
                'end_date': end_date, 'days_in_period': 0, 'avg_per_day': 0.0}

    filtered = []
    for row in rows:
        row_date = _as_date(format_cell(row.get(date_column)))
        if row_date is not None and start_date <= row_date <= end_date:
            filtered.append(row)

    days = (end_date - start_date).days
    return {
        'filtered_data': filtered,
        'row_count': len(filtered),
        'start_date': start_date,
        'end_date': end_date,
        'days_in_period': days,
        'avg_per_day': round(len(filtered) / days, 2) if days > 0 else float(len(filtered)),
    }


def anomaly_drill(rows: Sequence[Row], column: str, row_index: int) -> Dict[str, Any]:
    """
    Put one cell in context: expected range (mean ± 2 stdev), deviation,
    z-score and the rows within one standard deviation of the mean.
    """
    row = rows[row_index] if 0 <= row_index < len(rows) else {}
    values = [n for n in (parse_number(r.get(column)) for r in rows) if n is not None]
    value = parse_number(row.get(column)) if row else None

    if not values or value is None:
        return {
            'anomaly_index': row_index,
            'row_data': row,
            'anomaly_column': column,
            'anomaly_value': 0.0,
            'expected_range': {'min': 0.0, 'max': 0.0},
            'deviation_from_mean': 0.0,
            'z_score': 0.0,
            'similar_rows': [],
        }

    mean = statistics_utils.mean(values)
    stdev = statistics_utils.stdev(values)
    z_score = (value - mean) / stdev if stdev else 0.0

    similar = []
    for r in rows:
        number = parse_number(r.get(column))
        if number is not None and mean - stdev <= number <= mean + stdev:
            similar.append(r)

    return {
        'anomaly_index': row_index,
        'row_data': row,
        'anomaly_column': column,
        'anomaly_value': value,
        'expected_range': {'min': round(mean - 2 * stdev, 2), 'max': round(mean + 2 * stdev, 2)},
        'deviation_from_mean': round(value - mean, 2),
        'z_score': round(z_score, 2),
        'similar_rows': similar,
    }


def compare_to_total(all_rows: Sequence[Row],
                     filtered_rows: Sequence[Row],
                     analyze_column: str) -> Dict[str, Any]:
    """How much a filtered subset moves the average of ``analyze_column``."""
    total = segment_stats(all_rows, 'total', analyze_column)
    subset = segment_stats(filtered_rows, 'filtered', analyze_column)

    mean_diff = 0.0
    if total.mean is not None and subset.mean is not None:
        mean_diff = subset.mean - total.mean
    mean_diff_percent = mean_diff / total.mean * 100 if total.mean else 0.0

    if abs(mean_diff_percent) < 5:
        impact = '✅ Filter has minimal impact on average'
    elif mean_diff_percent > 10:
        impact = '⚠️ Filter significantly increases average'
    elif mean_diff_percent < -10:
        impact = '⚠️ Filter significantly decreases average'
    else:
        impact = '📊 Filter has moderate impact on average'

    return {
        'total_stats': total,
        'filtered_stats': subset,
        'differences': {
            'row_count_diff': len(filtered_rows) - len(all_rows),
            'row_count_percent': round(len(filtered_rows) / len(all_rows) * 100, 2) if all_rows else 0.0,
            'mean_diff': round(mean_diff, 2),
            'mean_diff_percent': round(mean_diff_percent, 2),
        },
        'filter_impact': impact,
    }


def get_breadcrumb(filters: Sequence[Dict[str, Any]]) -> str:
    """Navigation trail like ``Region: North → Status: paid``."""
    if not filters:
        return 'All Data'
    return ' → '.join(f"{f['column']}: {format_cell(f['value'])}" for f in filters)
