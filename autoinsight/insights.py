"""
Advanced analysis on top of the rule-based query engine.

Column statistics, pattern detection, anomaly and correlation scans, a
one-shot list of dataset insights, and a ``DataAssistant`` that routes a
question to cleaning guidance, an analysis answer or the query engine.
"""

import logging
import re
from collections import deque
from itertools import combinations
from typing import Any, Deque, Dict, List, Optional, Sequence

from .config import IQR_MULTIPLIER
from .models import (
    Answer, CONFIDENCE_HIGH, CONFIDENCE_MEDIUM, DatasetSummary, Row,
    TYPE_NUMBER, TYPE_STRING, format_cell
)
from .quality_profiler import (
    build_dataset_summary, derive_cleaning_issues, detect_outliers_iqr,
    duplicate_stats, frequency_table, numeric_column
)
from .query_engine import answer_question, conversation_context
from .schema_inference import column_values, infer_column_type, infer_schema, is_empty, parse_number
from . import statistics_utils

logger = logging.getLogger(__name__)

_DATE_LIKE = re.compile(r'\d{4}[-/]\d{2}[-/]\d{2}')
_EMAIL = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
_URL = re.compile(r'^https?://')
_PHONE = re.compile(r'^\+?[\d\s\-()]{10,}$')
_IDENTIFIER = re.compile(r'^[a-zA-Z0-9_-]+$')
_FIX_WORDS = re.compile(r'\b(fix|clean|improve|solution)\b')

QUESTION_TYPES = ('distribution', 'correlation', 'pattern', 'anomaly', 'quality', 'general')


def analyze_column_stats(rows: Sequence[Row], column: str) -> Optional[Dict[str, Any]]:
    """
    Descriptive statistics for one column.

    Returns:
        Dictionary with type, unique and null counts, the ten most common
        values and either numeric stats or string length bounds. None when
        there are no rows.
    """
    if not rows:
        return None

    values = column_values(rows, column)
    present = [v for v in values if not is_empty(v)]
    unique_values = list(dict.fromkeys(format_cell(v).strip() for v in present))

    stats: Dict[str, Any] = {
        'name': column,
        'type': infer_column_type(values) if present else TYPE_STRING,
        'unique_count': len(unique_values),
        'unique_values': unique_values[:20],
        'null_count': len(values) - len(present),
        'most_common': frequency_table(present)[:10],
    }

    numbers = [n for n in (parse_number(v) for v in present) if n is not None]
    if stats['type'] == TYPE_NUMBER and numbers:
        described = statistics_utils.describe(numbers)
        stats.update({
            'min': described['min'],
            'max': described['max'],
            'mean': described['mean'],
            'median': described['median'],
            'stdev': described['stdev'],
            'mode': stats['most_common'][0][0] if stats['most_common'] else None,
        })
    elif present:
        lengths = [len(format_cell(v)) for v in present]
        stats['min_length'] = min(lengths)
        stats['max_length'] = max(lengths)

    return stats


def detect_patterns(rows: Sequence[Row], column: str) -> List[str]:
    """Describe what a column looks like: dates, emails, IDs, variability..."""
    stats = analyze_column_stats(rows, column)
    if not stats or not stats['unique_values']:
        return []

    samples = stats['unique_values']
    patterns: List[str] = []

    if stats['unique_count'] > 10 and any(_DATE_LIKE.search(v) for v in samples):
        patterns.append('Date/temporal data')
    if any(_EMAIL.match(v) for v in samples):
        patterns.append('Email addresses')
    if any(_URL.match(v) for v in samples):
        patterns.append('URLs/web links')
    if any(_PHONE.match(v) for v in samples):
        patterns.append('Phone numbers')
    if stats['type'] == TYPE_STRING and stats['unique_count'] <= len(rows) * 0.1:
        patterns.append('Categorical data (limited unique values)')
    if stats['unique_count'] == len(rows) and _IDENTIFIER.match(samples[0]):
        patterns.append('Identifier/ID column')

    if stats['type'] == TYPE_NUMBER and 'stdev' in stats:
        spread = stats['max'] - stats['min']
        if stats['stdev'] == 0:
            patterns.append('Constant values (no variation)')
        elif stats['stdev'] > spread * 0.5:
            patterns.append('High variability')
        else:
            patterns.append('Consistent distribution')

    return patterns


def detect_anomalies(rows: Sequence[Row], column: str, threshold: float = IQR_MULTIPLIER) -> Dict[str, Any]:
    """
    Flag unusual cells in a column.

    Number columns use the IQR fences (severity high beyond three standard
    deviations from the mean). String columns flag lengths far from the
    average unique-value length.
    """
    stats = analyze_column_stats(rows, column)
    anomalies: List[Dict[str, Any]] = []
    if not stats:
        return {'column': column, 'anomalies': anomalies}

    if stats['type'] == TYPE_NUMBER and 'stdev' in stats:
        pairs = numeric_column(rows, column)
        result = detect_outliers_iqr([v for _, v in pairs], threshold)
        for position in result.outlier_indices:
            row_index, value = pairs[position]
            far = abs(value - stats['mean']) > 3 * stats['stdev']
            anomalies.append({
                'row_index': row_index,
                'value': value,
                'type': 'outlier',
                'severity': 'high' if far else 'medium',
            })
    elif stats['type'] == TYPE_STRING and stats['unique_values']:
        average = sum(len(v) for v in stats['unique_values']) / len(stats['unique_values'])
        for row_index, row in enumerate(rows):
            text = format_cell(row.get(column))
            if len(text) > average * 2.5 or len(text) < average * 0.1:
                anomalies.append({
                    'row_index': row_index,
                    'value': text,
                    'type': 'unusual_length',
                    'severity': 'low',
                })

    return {'column': column, 'anomalies': anomalies}


def _numeric_headers(rows: Sequence[Row], headers: Sequence[str]) -> List[str]:
    return [c.name for c in infer_schema(headers, rows) if c.inferred_type == TYPE_NUMBER]


def calculate_correlations(rows: Sequence[Row], headers: Sequence[str]) -> List[Dict[str, Any]]:
    """
    Pearson correlation for every pair of number columns.

    Only rows where both cells parse as numbers are paired. Results are
    sorted by absolute correlation, strongest first.
    """
    results = []
    for first, second in combinations(_numeric_headers(rows, headers), 2):
        xs, ys = [], []
        for row in rows:
            x = parse_number(row.get(first))
            y = parse_number(row.get(second))
            if x is not None and y is not None:
                xs.append(x)
                ys.append(y)

        test = statistics_utils.pearson_correlation(xs, ys)
        if test['strength'] == 'Insufficient data':
            continue
        results.append({
            'column1': first,
            'column2': second,
            'correlation': test['correlation'],
            'p_value': test['p_value'],
            'significant': test['significant'],
            'strength': test['strength'],
        })

    results.sort(key=lambda r: abs(r['correlation']), reverse=True)
    return results


def generate_insights(rows: Sequence[Row], headers: Sequence[str]) -> List[str]:
    """Short headline findings about the dataset."""
    if not rows:
        return []

    insights = [f"📊 Dataset contains {len(rows):,} rows and {len(headers)} columns"]

    total_cells = len(rows) * len(headers)
    null_cells = sum(1 for row in rows for h in headers if is_empty(row.get(h)))
    if total_cells:
        insights.append(f"✅ Data completeness: {(total_cells - null_cells) / total_cells * 100:.1f}%")

    duplicates, _ = duplicate_stats(rows, headers)
    if duplicates > 0:
        insights.append(f"⚠️ Found {duplicates} duplicate rows")

    diverse = [
        h for h in headers
        if len({format_cell(row.get(h)) for row in rows}) > len(rows) * 0.8
    ]
    if diverse:
        insights.append(f"🔀 High-diversity columns: {', '.join(diverse[:3])}")

    strong = [c for c in calculate_correlations(rows, headers) if abs(c['correlation']) > 0.7]
    if strong:
        top = strong[0]
        insights.append(
            f"🔗 Strong correlation: {top['column1']} ↔ {top['column2']} ({top['correlation']:.2f})"
        )

    return insights


def classify_question(question: str) -> Dict[str, Any]:
    """Broad analysis category of a question with a heuristic confidence."""
    q = question.lower()
    if any(w in q for w in ('distribution', 'spread', 'histogram')):
        return {'type': 'distribution', 'confidence': 0.95}
    if any(w in q for w in ('correlation', 'relate', 'connection')):
        return {'type': 'correlation', 'confidence': 0.9}
    if any(w in q for w in ('pattern', 'trend', 'behavior')):
        return {'type': 'pattern', 'confidence': 0.85}
    if any(w in q for w in ('anomal', 'outlier', 'unusual')):
        return {'type': 'anomaly', 'confidence': 0.9}
    if any(w in q for w in ('quality', 'clean', 'issue')):
        return {'type': 'quality', 'confidence': 0.85}
    return {'type': 'general', 'confidence': 0.5}


def _distribution_answer(rows, headers) -> Answer:
    columns = _numeric_headers(rows, headers)
    if not columns:
        return Answer('No numeric columns found for distribution analysis.', CONFIDENCE_MEDIUM,
                      ['Checked inferred column types.'])
    lines = []
    for column in columns[:3]:
        stats = analyze_column_stats(rows, column)
        if stats and 'mean' in stats:
            lines.append(
                f"**{column}**: Mean = {stats['mean']:.2f}, StdDev = {stats['stdev']:.2f}, "
                f"Range = [{format_cell(stats['min'])}, {format_cell(stats['max'])}]"
            )
    return Answer('📈 **Distribution Analysis:**\n\n' + '\n'.join(lines), CONFIDENCE_HIGH,
                  [f"Described numeric columns: {', '.join(columns[:3])}"])


def _correlation_answer(rows, headers) -> Answer:
    correlations = calculate_correlations(rows, headers)[:5]
    if not correlations:
        return Answer('No significant correlations found between numeric columns.', CONFIDENCE_MEDIUM,
                      ['Need at least two numeric columns with three paired values.'])
    lines = []
    for c in correlations:
        arrow = '↑' if c['correlation'] > 0 else '↓'
        lines.append(
            f"{c['column1']} {arrow} {c['column2']}: {c['correlation']:.3f} "
            f"({c['strength']}, p={c['p_value']:.4f})"
        )
    return Answer('🔗 **Correlation Analysis:**\n\n' + '\n'.join(lines), CONFIDENCE_HIGH,
                  ['Pearson correlation over rows where both values are numeric.'])


def _pattern_answer(rows, headers) -> Answer:
    lines = []
    for column in headers[:4]:
        patterns = detect_patterns(rows, column)
        if patterns:
            lines.append(f"**{column}**: {', '.join(patterns)}")
    if not lines:
        return Answer('No specific patterns detected.', CONFIDENCE_MEDIUM, [])
    return Answer('🔍 **Detected Patterns:**\n\n' + '\n'.join(lines), CONFIDENCE_HIGH,
                  ['Checked value formats, cardinality and spread per column.'])


def _anomaly_answer(rows, headers) -> Answer:
    lines = []
    for column in headers[:3]:
        found = detect_anomalies(rows, column)['anomalies']
        if found:
            lines.append(f"**{column}**: {len(found)} anomalies detected")
    if not lines:
        return Answer('No major anomalies detected - data looks clean!', CONFIDENCE_HIGH,
                      ['IQR fences on numeric columns, length checks on text columns.'])
    return Answer('⚠️ **Anomaly Detection:**\n\n' + '\n'.join(lines), CONFIDENCE_HIGH,
                  ['IQR fences on numeric columns, length checks on text columns.'])


def _quality_answer(rows, headers) -> Answer:
    total_cells = len(rows) * len(headers)
    nulls = sum(1 for row in rows for h in headers if is_empty(row.get(h)))
    duplicates, _ = duplicate_stats(rows, headers)
    unique = len(rows) - duplicates

    text = (
        '📋 **Data Quality Report:**\n\n'
        f"Completeness: {(1 - nulls / total_cells) * 100:.1f}%\n"
        f"Total Rows: {len(rows):,}\n"
        f"Total Columns: {len(headers)}\n"
        f"Unique Records: {unique:,}\n"
    )
    if duplicates:
        text += f"Duplicates: {duplicates}\n"
    return Answer(text.rstrip(), CONFIDENCE_HIGH, ['Counted empty cells and repeated row signatures.'])


_COMPLEX_HANDLERS = {
    'distribution': _distribution_answer,
    'correlation': _correlation_answer,
    'pattern': _pattern_answer,
    'anomaly': _anomaly_answer,
    'quality': _quality_answer,
}


def answer_complex_question(question: str,
                            rows: Sequence[Row],
                            headers: Sequence[str]) -> Optional[Answer]:
    """Answer distribution/correlation/pattern/anomaly/quality questions, else None."""
    if not rows or not headers:
        return None
    handler = _COMPLEX_HANDLERS.get(classify_question(question)['type'])
    return handler(rows, headers) if handler else None


def is_fix_request(question: str) -> bool:
    q = question.lower()
    if _FIX_WORDS.search(q) or 'how do i' in q or 'how to' in q:
        return True
    return 'help' in q and any(w in q for w in ('missing', 'duplicate', 'invalid', 'quality'))


def suggest_fix(question: str, summary: DatasetSummary) -> Answer:
    """Cleaning guidance for the issue a question asks about, based on the summary."""
    q = question.lower()
    issues = derive_cleaning_issues(summary)
    rows = max(summary.row_count, 1)

    if any(w in q for w in ('missing', 'null', 'empty')):
        if not issues.missing_values:
            return Answer("✅ Your dataset has **no missing values**, nothing to fix.", CONFIDENCE_HIGH, [])
        listing = '\n'.join(
            f"• **{c.name}**: {c.missing_count} missing ({c.missing_count / rows * 100:.1f}%)"
            for c in issues.missing_values
        )
        return Answer(
            "🔧 **How to Fix Missing Values**\n\n"
            f"{listing}\n\n"
            "Run cleaning in `missing` mode to fill numbers with 0, dates with today "
            "and text with \"Unknown\", or use statistical imputation (median/mode).",
            CONFIDENCE_HIGH, ['Based on missing counts in the current dataset summary.'],
        )

    if 'duplicate' in q:
        if not issues.duplicates:
            return Answer("✅ No duplicate rows found, nothing to remove.", CONFIDENCE_HIGH, [])
        return Answer(
            "🔧 **How to Remove Duplicates**\n\n"
            f"There are **{issues.duplicates}** extra copies of repeated rows.\n"
            "Run cleaning in `auto` mode to keep only the first occurrence of each row.",
            CONFIDENCE_HIGH, ['Based on the duplicate count in the current dataset summary.'],
        )

    if any(w in q for w in ('invalid', 'type', 'format')):
        if not issues.invalid_types:
            return Answer("✅ All values match their column types.", CONFIDENCE_HIGH, [])
        listing = '\n'.join(
            f"• **{c.name}** ({c.inferred_type}): {c.invalid_count} invalid"
            for c in issues.invalid_types
        )
        return Answer(
            "🔧 **How to Fix Invalid Values**\n\n"
            f"{listing}\n\n"
            "Run cleaning in `invalid` mode to coerce numbers (unparseable become 0) "
            "and normalise dates to YYYY-MM-DD.",
            CONFIDENCE_HIGH, ['Based on invalid counts in the current dataset summary.'],
        )

    total = issues.total_issues
    if total == 0:
        return Answer("✅ Your data is already clean and ready for analysis.", CONFIDENCE_HIGH, [])
    return Answer(
        "🔧 **How to Clean Your Dataset**\n\n"
        f"Missing cells: {sum(c.missing_count for c in issues.missing_values)}\n"
        f"Invalid cells: {sum(c.invalid_count for c in issues.invalid_types)}\n"
        f"Duplicate rows: {issues.duplicates}\n\n"
        "Run cleaning in `auto` mode to fix missing values, invalid types and duplicates in one pass.",
        CONFIDENCE_MEDIUM, ['Based on the current dataset summary.'],
    )


class DataAssistant:
    """
    Conversational front end over one dataset snapshot.

    Keeps the last few questions so follow-ups like "and how many of those?"
    are interpreted in the topic of the conversation.
    """

    def __init__(self,
                 rows: Sequence[Row],
                 headers: Sequence[str],
                 summary: Optional[DatasetSummary] = None,
                 history_size: int = 4):
        self.rows = list(rows)
        self.headers = list(headers)
        self.summary = summary if summary is not None else build_dataset_summary(self.headers, self.rows)
        self.history: Deque[str] = deque(maxlen=history_size)

    @property
    def context(self) -> str:
        return conversation_context(list(self.history))

    def ask(self, question: str) -> Answer:
        """
        Answer a question, routing fix requests to cleaning guidance and
        analysis questions to the insight layer before the query engine.
        """
        context = self.context
        self.history.append(question)

        if is_fix_request(question):
            return suggest_fix(question, self.summary)

        complex_answer = answer_complex_question(question, self.rows, self.headers)
        if complex_answer is not None:
            return complex_answer

        return answer_question(question, self.rows, self.headers, prior_context=context)
