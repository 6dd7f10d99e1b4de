"""
Data structures shared by the parsing, profiling, query and cleaning layers.

Cells are plain Python values (``float``/``int``, ``str`` or ``None``).
``classify_cell`` is the single dispatch point that turns a cell into a
``CellKind`` so callers handle the three cases explicitly.
"""

import math
import numbers
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

Cell = Union[float, int, str, None]
Row = Dict[str, Cell]

TYPE_NUMBER = 'number'
TYPE_DATE = 'date'
TYPE_STRING = 'string'
COLUMN_TYPES = (TYPE_NUMBER, TYPE_DATE, TYPE_STRING)

CONFIDENCE_HIGH = 'high'
CONFIDENCE_MEDIUM = 'medium'
CONFIDENCE_LOW = 'low'


class CellKind(Enum):
    """Storage kind of a single cell."""
    NUMBER = 'number'
    TEXT = 'text'
    MISSING = 'missing'


def classify_cell(value: Any) -> CellKind:
    """Return the storage kind of a cell value."""
    if value is None:
        return CellKind.MISSING
    if isinstance(value, bool):
        return CellKind.TEXT
    if isinstance(value, numbers.Real):
        if math.isnan(float(value)):
            return CellKind.MISSING
        return CellKind.NUMBER
    return CellKind.TEXT


def format_cell(value: Any) -> str:
    """Render a cell as text; integral numbers lose their trailing ``.0``."""
    kind = classify_cell(value)
    if kind is CellKind.MISSING:
        return ''
    if kind is CellKind.NUMBER:
        number = float(value)
        if math.isfinite(number) and number.is_integer():
            return str(int(number))
        return str(number) if isinstance(value, float) else str(value)
    return str(value)


@dataclass
class ColumnSchema:
    """Inferred schema entry for a single column."""
    name: str
    inferred_type: str = TYPE_STRING
    missing_count: int = 0
    invalid_count: int = 0
    outlier_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.inferred_type,
            'missing': self.missing_count,
            'invalid': self.invalid_count,
            'outliers': self.outlier_count,
        }


@dataclass
class DatasetSummary:
    """
    Dataset-level summary.

    Always rebuilt from the current rows; never patched in place.
    """
    row_count: int
    column_count: int
    columns: List[ColumnSchema] = field(default_factory=list)
    duplicate_row_count: int = 0

    def column(self, name: str) -> Optional[ColumnSchema]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def column_types(self) -> Dict[str, str]:
        return {column.name: column.inferred_type for column in self.columns}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rows': self.row_count,
            'columns': self.column_count,
            'column_details': [column.to_dict() for column in self.columns],
            'duplicates': self.duplicate_row_count,
        }


@dataclass
class CleaningIssues:
    """Buckets of columns needing attention, derived from a DatasetSummary."""
    missing_values: List[ColumnSchema] = field(default_factory=list)
    invalid_types: List[ColumnSchema] = field(default_factory=list)
    outliers: List[ColumnSchema] = field(default_factory=list)
    duplicates: int = 0

    @property
    def total_issues(self) -> int:
        return (sum(c.missing_count for c in self.missing_values)
                + sum(c.invalid_count for c in self.invalid_types)
                + self.duplicates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'missing_values': [c.to_dict() for c in self.missing_values],
            'invalid_types': [c.to_dict() for c in self.invalid_types],
            'outliers': [c.to_dict() for c in self.outliers],
            'duplicates': self.duplicates,
        }


class FilterOperator(Enum):
    """Operators understood by the filter predicates."""
    EQUALS = 'equals'
    CONTAINS = 'contains'
    GREATER = 'greater'
    LESS = 'less'
    BETWEEN = 'between'
    IN = 'in'
    IS_EMPTY = 'isEmpty'
    IS_NOT_EMPTY = 'isNotEmpty'


@dataclass(frozen=True)
class FilterPredicate:
    """
    A single column predicate.

    ``value`` is a scalar for most operators, a ``(low, high)`` pair for
    ``BETWEEN``, a sequence for ``IN`` and ignored by the emptiness checks.
    """
    column: str
    operator: FilterOperator
    value: Any = None

    def describe(self) -> str:
        if self.operator in (FilterOperator.IS_EMPTY, FilterOperator.IS_NOT_EMPTY):
            return f"{self.column} {self.operator.value}"
        if self.operator is FilterOperator.BETWEEN:
            low, high = self.value
            return f"{self.column} between {low} and {high}"
        if self.operator is FilterOperator.IN:
            return f"{self.column} in ({', '.join(str(v) for v in self.value)})"
        return f'{self.column} {self.operator.value} "{self.value}"'


class Intent(Enum):
    """Closed set of question intents, listed in classification priority."""
    WHY_RAW = 'WHY_RAW'
    QUALITY_SUMMARY = 'QUALITY_SUMMARY'
    LIST_DUPLICATES = 'LIST_DUPLICATES'
    COUNT_DUPLICATES = 'COUNT_DUPLICATES'
    COUNT_ROWS = 'COUNT_ROWS'
    COUNT_NAME = 'COUNT_NAME'
    TOP_VALUES = 'TOP_VALUES'
    GROUP_SUM = 'GROUP_SUM'
    SUM = 'SUM'
    UNKNOWN = 'UNKNOWN'


@dataclass(frozen=True)
class QueryPlan:
    """Resolved, immutable representation of a question."""
    intent: Intent
    filters: Tuple[FilterPredicate, ...] = ()
    resolved_column: Optional[str] = None
    metric_column: Optional[str] = None
    group_by_column: Optional[str] = None
    top_n: Optional[int] = None
    name_query: Optional[str] = None


@dataclass
class Answer:
    """Natural-language answer with its explainability trail."""
    text: str
    confidence: str = CONFIDENCE_HIGH
    how: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'text': self.text, 'confidence': self.confidence, 'how': list(self.how)}

    def render(self) -> str:
        """Answer text followed by the explainability bullets."""
        if not self.how:
            return self.text
        bullets = '\n'.join(f"• {step}" for step in self.how)
        return f"{self.text}\n\nHow I analyzed this:\n{bullets}"
