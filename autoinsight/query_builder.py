"""
Structured query builder: filter, group, select, order and limit rows.

The pipeline order is fixed (filters, group by, select, order by, limit).
A grouped query projects onto the group column and its aggregates, named
like ``revenue_sum``; ordering can use those names.
The SQL text is a display-only rendering of the same projection.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .models import FilterOperator, FilterPredicate, Row, TYPE_NUMBER, TYPE_STRING, format_cell
from .query_engine import group_key
from .schema_inference import infer_schema, is_empty, parse_number

logger = logging.getLogger(__name__)

AGGREGATION_TYPES = ('sum', 'avg', 'count', 'min', 'max')
SORT_DIRECTIONS = ('asc', 'desc')

_RANGE = re.compile(r'^\s*(-?[\d.,$]+)\s*-\s*(-?[\d.,$]+)\s*$')


@dataclass(frozen=True)
class Aggregation:
    column: str
    type: str = 'sum'

    def __post_init__(self):
        if self.type not in AGGREGATION_TYPES:
            raise ValueError(f"Unknown aggregation '{self.type}'")

    @property
    def output_name(self) -> str:
        return f"{self.column}_{self.type}"


@dataclass(frozen=True)
class GroupBy:
    column: str
    aggregations: List[Aggregation] = field(default_factory=list)


@dataclass(frozen=True)
class OrderBy:
    column: str
    direction: str = 'asc'

    def __post_init__(self):
        if self.direction not in SORT_DIRECTIONS:
            raise ValueError(f"Unknown sort direction '{self.direction}'")


@dataclass
class QueryConfig:
    """A complete builder query; every part is optional."""
    select: List[str] = field(default_factory=list)
    filters: List[FilterPredicate] = field(default_factory=list)
    group_by: Optional[GroupBy] = None
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'QueryConfig':
        """Build a config from plain dictionaries (e.g. loaded from JSON)."""
        group_by = None
        if config.get('group_by'):
            raw = config['group_by']
            group_by = GroupBy(
                column=raw['column'],
                aggregations=[Aggregation(a['column'], a['type']) for a in raw.get('aggregations', [])],
            )
        order_by = None
        if config.get('order_by'):
            raw = config['order_by']
            order_by = OrderBy(raw['column'], raw.get('direction', 'asc'))
        return cls(
            select=list(config.get('select', [])),
            filters=[
                FilterPredicate(f['column'], FilterOperator(f['operator']), f.get('value'))
                for f in config.get('filters', [])
            ],
            group_by=group_by,
            order_by=order_by,
            limit=config.get('limit'),
        )


@dataclass
class ExecutionResult:
    results: List[Row]
    row_count: int
    sql: str
    execution_time: float  # milliseconds


# =================== Filters ===================

def _text(value: Any) -> str:
    return format_cell(value).strip()


def _equals(cell: Any, target: Any) -> bool:
    cell_number = parse_number(cell)
    target_number = parse_number(target)
    if cell_number is not None and target_number is not None:
        return cell_number == target_number
    return _text(cell).casefold() == _text(target).casefold()


def _compare(cell: Any, target: Any, op) -> bool:
    cell_number = parse_number(cell)
    target_number = parse_number(target)
    if cell_number is None or target_number is None:
        return False
    return op(cell_number, target_number)


def matches_filter(row: Row, predicate: FilterPredicate) -> bool:
    """
    Evaluate one predicate against a row.

    Equality is numeric when both sides are numbers, otherwise case-insensitive
    text. Range operators only match numeric cells; ``between`` is inclusive.
    """
    value = row.get(predicate.column)
    operator = predicate.operator

    if operator is FilterOperator.EQUALS:
        return _equals(value, predicate.value)
    if operator is FilterOperator.CONTAINS:
        return _text(predicate.value).casefold() in _text(value).casefold()
    if operator is FilterOperator.GREATER:
        return _compare(value, predicate.value, lambda a, b: a > b)
    if operator is FilterOperator.LESS:
        return _compare(value, predicate.value, lambda a, b: a < b)
    if operator is FilterOperator.BETWEEN:
        low, high = predicate.value
        return _compare(value, low, lambda a, b: a >= b) and _compare(value, high, lambda a, b: a <= b)
    if operator is FilterOperator.IN:
        return any(_equals(value, option) for option in predicate.value)
    if operator is FilterOperator.IS_EMPTY:
        return is_empty(value)
    if operator is FilterOperator.IS_NOT_EMPTY:
        return not is_empty(value)
    return True


def apply_filters(rows: Sequence[Row], filters: Sequence[FilterPredicate]) -> List[Row]:
    if not filters:
        return list(rows)
    return [row for row in rows if all(matches_filter(row, f) for f in filters)]


# =================== Group by ===================

def _aggregate(values: Sequence[Any], kind: str) -> Any:
    if kind == 'count':
        return sum(1 for v in values if not is_empty(v))

    numbers = [n for n in (parse_number(v) for v in values) if n is not None]
    if kind == 'sum':
        return sum(numbers)
    if kind == 'avg':
        return round(sum(numbers) / len(numbers), 2) if numbers else 0
    if kind == 'min':
        return min(numbers) if numbers else None
    return max(numbers) if numbers else None


def apply_group_by(rows: Sequence[Row], group_by: GroupBy) -> List[Row]:
    """
    Collapse rows into one row per group.

    Groups are keyed case-insensitively with whitespace collapsed and shown
    with their first spelling, in first-seen order. Non-numeric cells are
    left out of sum/avg/min/max; count counts non-empty cells.
    """
    groups: Dict[str, List[Row]] = {}
    display: Dict[str, str] = {}
    for row in rows:
        text = _text(row.get(group_by.column))
        key = group_key(text)
        display.setdefault(key, text)
        groups.setdefault(key, []).append(row)

    results: List[Row] = []
    for key, members in groups.items():
        aggregated: Row = {group_by.column: display[key]}
        for aggregation in group_by.aggregations:
            values = [member.get(aggregation.column) for member in members]
            aggregated[aggregation.output_name] = _aggregate(values, aggregation.type)
        results.append(aggregated)
    return results


# =================== Select / order ===================

def apply_select(rows: Sequence[Row], columns: Sequence[str]) -> List[Row]:
    if not columns:
        return list(rows)
    return [{column: row.get(column) for column in columns} for row in rows]


def _sort_key(value: Any):
    number = parse_number(value)
    if number is not None:
        return (0, number, '')
    return (1, 0.0, _text(value).casefold())


def apply_order_by(rows: Sequence[Row], order_by: OrderBy) -> List[Row]:
    """
    Stable sort. Numbers order numerically and come before text, which
    orders case-insensitively; descending reverses the whole order.
    """
    return sorted(
        rows,
        key=lambda row: _sort_key(row.get(order_by.column)),
        reverse=order_by.direction == 'desc',
    )


# =================== Execution ===================

def projection(config: QueryConfig) -> List[str]:
    """
    Columns the query returns, in order; empty means every column.

    Other source columns no longer exist once rows collapse into groups, so a
    grouped query returns the group column and its aggregates.
    """
    if config.group_by is not None:
        return [config.group_by.column] + [a.output_name for a in config.group_by.aggregations]
    return list(config.select)


def execute_query(rows: Sequence[Row], config: QueryConfig) -> ExecutionResult:
    """
    Run a builder query.

    Args:
        rows: Source records (left untouched)
        config: Query configuration

    Returns:
        ExecutionResult with the result rows, their count, the SQL rendering
        and the elapsed time in milliseconds
    """
    start = time.perf_counter()

    results = apply_filters(rows, config.filters)
    if config.group_by is not None:
        results = apply_group_by(results, config.group_by)
    results = apply_select(results, projection(config))
    if config.order_by is not None:
        results = apply_order_by(results, config.order_by)
    if config.limit:
        results = results[:config.limit]

    elapsed = (time.perf_counter() - start) * 1000
    sql = generate_sql(config)
    logger.info(f"Query returned {len(results)} rows in {elapsed:.1f} ms")
    return ExecutionResult(results=results, row_count=len(results), sql=sql, execution_time=elapsed)


# =================== SQL rendering ===================

def _quote(value: Any) -> str:
    return "'" + _text(value).replace("'", "''") + "'"


def filter_sql(predicate: FilterPredicate) -> str:
    column = predicate.column
    operator = predicate.operator
    if operator is FilterOperator.EQUALS:
        return f"{column} = {_quote(predicate.value)}"
    if operator is FilterOperator.CONTAINS:
        return f"{column} LIKE '%{_text(predicate.value)}%'"
    if operator is FilterOperator.GREATER:
        return f"{column} > {_text(predicate.value)}"
    if operator is FilterOperator.LESS:
        return f"{column} < {_text(predicate.value)}"
    if operator is FilterOperator.BETWEEN:
        low, high = predicate.value
        return f"{column} BETWEEN {_text(low)} AND {_text(high)}"
    if operator is FilterOperator.IN:
        return f"{column} IN ({', '.join(_quote(v) for v in predicate.value)})"
    if operator is FilterOperator.IS_EMPTY:
        return f"({column} IS NULL OR {column} = '')"
    return f"({column} IS NOT NULL AND {column} != '')"


def generate_sql(config: QueryConfig) -> str:
    """Human-readable SQL equivalent of the configuration. Never executed."""
    if config.group_by is not None:
        aggregations = [
            f"{a.type.upper()}({a.column}) AS {a.output_name}" for a in config.group_by.aggregations
        ]
        columns = ', '.join([config.group_by.column] + aggregations)
    elif config.select:
        columns = ', '.join(config.select)
    else:
        columns = '*'

    sql = f"SELECT {columns} FROM data"
    if config.filters:
        sql += ' WHERE ' + ' AND '.join(filter_sql(f) for f in config.filters)
    if config.group_by is not None:
        sql += f" GROUP BY {config.group_by.column}"
    if config.order_by is not None:
        sql += f" ORDER BY {config.order_by.column} {config.order_by.direction.upper()}"
    if config.limit:
        sql += f" LIMIT {config.limit}"
    return sql


# =================== Helpers ===================

def suggest_queries(rows: Sequence[Row], headers: Optional[Sequence[str]] = None) -> List[QueryConfig]:
    """Starter queries: top rows by a number, sum/avg by a category, counts by category."""
    if not rows:
        return []
    headers = list(headers) if headers is not None else list(rows[0].keys())
    schema = infer_schema(headers, rows)
    numeric = [c.name for c in schema if c.inferred_type == TYPE_NUMBER]
    text = [c.name for c in schema if c.inferred_type == TYPE_STRING]

    suggestions: List[QueryConfig] = []
    if numeric:
        suggestions.append(QueryConfig(
            select=list(headers),
            order_by=OrderBy(numeric[0], 'desc'),
            limit=10,
        ))
    if text and numeric:
        suggestions.append(QueryConfig(
            group_by=GroupBy(text[0], [Aggregation(numeric[0], 'sum'), Aggregation(numeric[0], 'avg')]),
            order_by=OrderBy(f"{numeric[0]}_sum", 'desc'),
        ))
    if text:
        suggestions.append(QueryConfig(
            group_by=GroupBy(text[0], [Aggregation(headers[0], 'count')]),
            order_by=OrderBy(f"{headers[0]}_count", 'desc'),
        ))
    return suggestions


def _operator(operator: Union[str, FilterOperator]) -> FilterOperator:
    return operator if isinstance(operator, FilterOperator) else FilterOperator(operator)


def create_quick_filter(column: str, operator: Union[str, FilterOperator], value: Any = None) -> FilterPredicate:
    return FilterPredicate(column, _operator(operator), value)


def build_filter_from_input(column: str,
                            operator: Union[str, FilterOperator],
                            user_value: str) -> FilterPredicate:
    """
    Build a predicate from typed user input.

    ``greater``/``less`` take a number, ``between`` takes ``min-max`` and
    ``in`` a comma-separated list.

    Raises:
        ValueError: If a numeric operator gets text that is not a number
    """
    op = _operator(operator)
    value: Any = (user_value or '').strip()

    if op in (FilterOperator.GREATER, FilterOperator.LESS):
        number = parse_number(value)
        if number is None:
            raise ValueError(f"'{user_value}' is not a number")
        value = number
    elif op is FilterOperator.BETWEEN:
        match = _RANGE.match(value)
        low = parse_number(match.group(1)) if match else None
        high = parse_number(match.group(2)) if match else None
        if low is None or high is None:
            raise ValueError(f"'{user_value}' is not a range like 10-20")
        value = (low, high)
    elif op is FilterOperator.IN:
        value = [part.strip() for part in value.split(',') if part.strip()]
    elif op in (FilterOperator.IS_EMPTY, FilterOperator.IS_NOT_EMPTY):
        value = None

    return FilterPredicate(column, op, value)
