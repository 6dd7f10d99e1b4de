"""
Rule-based question answering over in-memory rows.

A question goes through a fixed pipeline: intent classification against the
ordered ``INTENT_RULES`` table, column resolution through ``SYNONYMS``,
``where`` filter parsing, then intent-specific computation. Every answer
carries a ``how`` trail listing the filters applied and the rows considered.

Nothing here keeps state between calls and nothing raises for bad input:
unresolvable questions produce lower-confidence answers with example
phrasings.
"""

import logging
import re
from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .config import DEFAULT_TOP_N, DUPLICATE_PREVIEW_GROUPS, SIGNATURE_SEPARATOR
from .models import (
    Answer, CONFIDENCE_HIGH, CONFIDENCE_LOW, CONFIDENCE_MEDIUM, FilterOperator,
    FilterPredicate, Intent, QueryPlan, Row, TYPE_DATE, TYPE_NUMBER, format_cell
)
from .quality_profiler import detect_outliers_iqr, duplicate_stats, numeric_column
from .schema_inference import infer_schema, is_empty, parse_number

logger = logging.getLogger(__name__)

# Semantic roles and the header spellings accepted for each
SYNONYMS: Dict[str, List[str]] = {
    'customer': ['customer', 'customer name', 'client', 'client name', 'buyer', 'name', 'customername'],
    'product': ['product', 'item', 'item name', 'sku', 'product name'],
    'category': ['category', 'product category', 'segment', 'type'],
    'date': ['date', 'order date', 'orderdate', 'invoice date', 'transaction date', 'sales date'],
    'revenue': ['revenue', 'sales', 'amount', 'total', 'total amount', 'price', 'sale amount'],
    'quantity': ['quantity', 'qty', 'units', 'unit sold', 'items'],
    'status': ['status', 'state'],
    'region': ['region', 'area', 'location', 'country', 'city'],
}

CONTEXT_MISSING = 'missing_values'
CONTEXT_DUPLICATES = 'duplicates'
CONTEXT_INVALID = 'invalid_types'
CONTEXT_ANOMALIES = 'anomalies'

EXAMPLE_QUESTIONS = [
    'Explain the data quality',
    'How many rows are there?',
    'How many Mike are there?',
    'How many duplicates?',
    'Total revenue',
    'Sales by category',
    'Top 5 customers',
]

_BLOCKED_NAME_TOKENS = {'rows', 'row', 'columns', 'column', 'records', 'entries', 'duplicates'}
_NAME_COUNT = re.compile(r'^how many\s+[\'"]?([a-z]+)[\'"]?\b', re.IGNORECASE)
_TOP_N = re.compile(r'\btop\s+(\d+)\b', re.IGNORECASE)
_CONTAINS_CLAUSE = re.compile(r'^(.+?)\s+contains\s+(.+)$', re.IGNORECASE)
_EQUALS_CLAUSE = re.compile(r'^(.+?)\s+(is|=)\s+(.+)$', re.IGNORECASE)
_PUNCTUATION = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')


# =================== Text helpers ===================

def normalize(text: str) -> str:
    """Lower-case, trim and collapse whitespace."""
    return _WHITESPACE.sub(' ', text.lower().strip())


def strip_punctuation(text: str) -> str:
    return _WHITESPACE.sub(' ', _PUNCTUATION.sub(' ', text)).strip()


def _has_any(text: str, *words: str) -> bool:
    return any(word in text for word in words)


# =================== Column resolution ===================

def resolve_column(headers: Sequence[str], role: str) -> Optional[str]:
    """
    Find the header playing a semantic role.

    Synonyms are tried first as exact normalized matches, then as substrings
    of the normalized headers.
    """
    synonyms = SYNONYMS.get(role, [])
    by_normalized = {}
    for header in headers:
        by_normalized.setdefault(normalize(header), header)

    for synonym in synonyms:
        found = by_normalized.get(normalize(synonym))
        if found is not None:
            return found

    for synonym in synonyms:
        target = normalize(synonym)
        for header in headers:
            if target in normalize(header):
                return header
    return None


def best_header_match(headers: Sequence[str], raw: str) -> Optional[str]:
    """Match user text to a real header: exact normalized first, then substring."""
    target = normalize(raw)
    if not target:
        return None
    for header in headers:
        if normalize(header) == target:
            return header
    for header in headers:
        if target in normalize(header):
            return header
    return None


# =================== Question parsing ===================

def detect_top_n(question: str) -> Optional[int]:
    match = _TOP_N.search(question)
    if not match:
        return None
    n = int(match.group(1))
    return n if n > 0 else None


def parse_name_count(question: str) -> Optional[str]:
    """Name token from "how many <name> ..." questions, or None."""
    match = _NAME_COUNT.match(question.strip())
    if not match:
        return None
    candidate = match.group(1)
    if candidate.lower() in _BLOCKED_NAME_TOKENS:
        return None
    return candidate.lower()


def parse_filters(question: str, headers: Sequence[str]) -> Tuple[FilterPredicate, ...]:
    """
    Parse a trailing ``where`` clause.

    Two shapes are understood: ``<col> contains <value>`` and
    ``<col> is|= <value>``. The column is matched against the real headers.
    """
    where = question.lower().find('where ')
    if where == -1:
        return ()
    clause = question[where + len('where '):].strip()

    match = _CONTAINS_CLAUSE.match(clause)
    if match:
        column = best_header_match(headers, match.group(1).strip())
        value = strip_punctuation(match.group(2).strip())
        if column and value:
            return (FilterPredicate(column, FilterOperator.CONTAINS, value),)
        return ()

    match = _EQUALS_CLAUSE.match(clause)
    if match:
        column = best_header_match(headers, match.group(1).strip())
        value = strip_punctuation(match.group(3).strip())
        if column and value:
            return (FilterPredicate(column, FilterOperator.EQUALS, value),)
    return ()


def _question_text(question: str) -> str:
    """Lower-cased question without its ``where`` clause."""
    lower = question.lower()
    where = lower.find('where ')
    return lower[:where] if where != -1 else lower


# Ordered decision table; the first matching predicate decides the intent.
IntentRule = Tuple[Callable[[str], bool], Intent]

INTENT_RULES: List[IntentRule] = [
    (lambda q: 'why' in q and _has_any(q, 'raw', 'dirty', 'unclean'), Intent.WHY_RAW),
    (lambda q: _has_any(q, 'quality', 'dirty', 'issues', 'problem'), Intent.QUALITY_SUMMARY),
    (lambda q: 'duplicate' in q and _has_any(q, 'list', 'show'), Intent.LIST_DUPLICATES),
    (lambda q: 'duplicate' in q, Intent.COUNT_DUPLICATES),
    (lambda q: 'how many' in q and _has_any(q, 'rows', 'records', 'entries'), Intent.COUNT_ROWS),
    (lambda q: parse_name_count(q) is not None, Intent.COUNT_NAME),
    (lambda q: 'top' in q and _has_any(q, 'customer', 'product', 'category'), Intent.TOP_VALUES),
    (lambda q: _has_any(q, 'by category', 'by product', 'by customer')
     and _has_any(q, 'sales', 'revenue', 'amount', 'total'), Intent.GROUP_SUM),
    (lambda q: 'total' in q and _has_any(q, 'revenue', 'sales', 'amount'), Intent.SUM),
]


def classify_intent(question: str) -> Intent:
    text = _question_text(question).strip()
    for predicate, intent in INTENT_RULES:
        if predicate(text):
            return intent
    return Intent.UNKNOWN


def plan_question(question: str, headers: Sequence[str]) -> QueryPlan:
    """
    Turn a question into an immutable QueryPlan.

    Args:
        question: Free-text question
        headers: Real column names of the dataset

    Returns:
        QueryPlan with intent, resolved columns and filters
    """
    filters = parse_filters(question, headers)
    intent = classify_intent(question)
    text = _question_text(question)
    top_n = detect_top_n(question) or DEFAULT_TOP_N

    if intent is Intent.COUNT_NAME:
        return QueryPlan(intent=intent, filters=filters,
                         resolved_column=resolve_column(headers, 'customer'),
                         name_query=parse_name_count(text.strip()))

    if intent is Intent.TOP_VALUES:
        role = 'customer'
        if 'product' in text:
            role = 'product'
        if 'category' in text:
            role = 'category'
        return QueryPlan(intent=intent, filters=filters,
                         resolved_column=resolve_column(headers, role), top_n=top_n)

    if intent is Intent.GROUP_SUM:
        role = 'category'
        if 'by product' in text:
            role = 'product'
        if 'by customer' in text:
            role = 'customer'
        return QueryPlan(intent=intent, filters=filters,
                         metric_column=resolve_column(headers, 'revenue'),
                         group_by_column=resolve_column(headers, role), top_n=top_n)

    if intent is Intent.SUM:
        return QueryPlan(intent=intent, filters=filters,
                         metric_column=resolve_column(headers, 'revenue'))

    return QueryPlan(intent=intent, filters=filters)


# =================== Execution helpers ===================

def _match_text(value) -> str:
    return strip_punctuation(format_cell(value)).lower()


def apply_plan_filters(rows: Sequence[Row], filters: Sequence[FilterPredicate]) -> List[Row]:
    """Keep rows satisfying every filter (punctuation-insensitive, case-insensitive)."""
    if not filters:
        return list(rows)

    def keep(row: Row) -> bool:
        for predicate in filters:
            cell = _match_text(row.get(predicate.column))
            target = strip_punctuation(str(predicate.value)).lower()
            if predicate.operator is FilterOperator.EQUALS and cell != target:
                return False
            if predicate.operator is FilterOperator.CONTAINS and target not in cell:
                return False
        return True

    return [row for row in rows if keep(row)]


def count_name_tokens(rows: Sequence[Row], column: str, name: str) -> int:
    """Rows whose cell contains ``name`` as a whole whitespace-delimited token."""
    target = strip_punctuation(name).lower()
    return sum(
        1 for row in rows
        if target in _match_text(row.get(column)).split(' ')
    )


def group_key(text: str) -> str:
    """Grouping key shared by every engine: case-folded, whitespace collapsed."""
    return _WHITESPACE.sub(' ', text.strip()).casefold()


def top_values(rows: Sequence[Row], column: str, top_n: int) -> List[Tuple[str, int]]:
    counts: Counter = Counter()
    display: Dict[str, str] = {}
    for row in rows:
        text = strip_punctuation(format_cell(row.get(column)))
        if not text:
            continue
        key = group_key(text)
        display.setdefault(key, text)
        counts[key] += 1
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [(display[key], count) for key, count in ranked[:top_n]]


def sum_column(rows: Sequence[Row], column: str) -> Tuple[float, int, int]:
    """``(total, used, skipped)``; non-numeric cells are skipped, not zeroed."""
    total = 0.0
    used = skipped = 0
    for row in rows:
        number = parse_number(row.get(column))
        if number is None:
            skipped += 1
            continue
        total += number
        used += 1
    return total, used, skipped


def group_sum(rows: Sequence[Row],
              group_column: str,
              metric_column: str,
              top_n: int) -> Tuple[List[Tuple[str, float]], int]:
    """Sum ``metric_column`` per group, largest first, with the skipped-row count."""
    totals: Dict[str, float] = {}
    display: Dict[str, str] = {}
    skipped = 0
    for row in rows:
        group = strip_punctuation(format_cell(row.get(group_column)))
        if not group:
            continue
        number = parse_number(row.get(metric_column))
        if number is None:
            skipped += 1
            continue
        key = group_key(group)
        display.setdefault(key, group)
        totals[key] = totals.get(key, 0.0) + number

    ranked = sorted(totals.items(), key=lambda item: -item[1])
    return [(display[key], value) for key, value in ranked[:top_n]], skipped


def quality_counts(rows: Sequence[Row], headers: Sequence[str]) -> Dict[str, float]:
    """Issue-density quality score with its missing/invalid/duplicate counts."""
    total_cells = len(rows) * len(headers)
    missing = sum(1 for row in rows for h in headers if is_empty(row.get(h)))

    invalid_numbers = invalid_dates = 0
    for column in infer_schema(headers, rows):
        if column.inferred_type == TYPE_NUMBER:
            invalid_numbers += column.invalid_count
        elif column.inferred_type == TYPE_DATE:
            invalid_dates += column.invalid_count

    duplicates, _ = duplicate_stats(rows, headers)
    issue_count = missing + invalid_numbers + invalid_dates + duplicates
    score = 100.0 if total_cells == 0 else max(0.0, 100 - issue_count / total_cells * 100)

    return {
        'total_cells': total_cells,
        'missing': missing,
        'invalid_numbers': invalid_numbers,
        'invalid_dates': invalid_dates,
        'duplicates': duplicates,
        'quality_score': score,
    }


def _assessment(score: float) -> str:
    if score >= 95:
        return 'Excellent (very clean)'
    if score >= 85:
        return 'Good (minor issues)'
    if score >= 70:
        return 'Fair (needs cleaning)'
    return 'Poor (significant issues)'


# =================== Intent handlers ===================

def _answer_count_rows(plan, rows, all_rows, headers, how) -> Answer:
    return Answer(
        f"You have **{len(rows):,} rows** in this dataset (after any filters).",
        CONFIDENCE_HIGH, how,
    )


def _answer_count_name(plan, rows, all_rows, headers, how) -> Answer:
    column = plan.resolved_column
    if column is None:
        return Answer(
            "I can count names, but I couldn't find a customer name column. "
            'Try asking with a column, like: "how many mike where Name contains mike".',
            CONFIDENCE_MEDIUM, how + ['Customer column not found via synonyms.'],
        )
    count = count_name_tokens(rows, column, plan.name_query)
    return Answer(
        f'There are **{count}** rows where **{column}** contains the name **"{plan.name_query}"**.',
        CONFIDENCE_HIGH, how + [f"Counted whole-token matches in column: {column}"],
    )


def _answer_count_duplicates(plan, rows, all_rows, headers, how) -> Answer:
    count, _ = duplicate_stats(rows, headers)
    noun = 'row' if count == 1 else 'rows'
    return Answer(
        f"Found **{count} duplicate {noun}** (extra copies beyond the first).",
        CONFIDENCE_HIGH,
        how + ['Duplicates detected by matching entire-row signatures across all columns.'],
    )


def _answer_list_duplicates(plan, rows, all_rows, headers, how) -> Answer:
    _, repeated = duplicate_stats(rows, headers)
    if not repeated:
        return Answer("✅ No duplicate rows found.", CONFIDENCE_HIGH, how)

    shown = headers[:4]
    lines = []
    for position, (signature, count) in enumerate(list(repeated.items())[:DUPLICATE_PREVIEW_GROUPS], start=1):
        parts = signature.split(SIGNATURE_SEPARATOR)
        cells = ', '.join(f"{h}: {parts[i] if i < len(parts) else ''}" for i, h in enumerate(shown))
        lines.append(f"{position}) {cells} (appears {count} times)")

    return Answer(
        f"Here are example duplicates (showing up to {DUPLICATE_PREVIEW_GROUPS} groups):\n"
        + '\n'.join(lines)
        + "\n\nTip: ask for a specific key like Customer+Date to narrow the duplicate check.",
        CONFIDENCE_MEDIUM,
        how + ['Preview shows a subset to keep the answer readable.'],
    )


def _answer_quality_summary(plan, rows, all_rows, headers, how) -> Answer:
    counts = quality_counts(rows, headers)
    score = counts['quality_score']
    return Answer(
        "📋 **Data Quality Summary**\n"
        f"Quality Score: **{score:.1f}%** ({_assessment(score)})\n\n"
        "Issues detected:\n"
        f"• Missing cells: {counts['missing']}\n"
        f"• Invalid numbers: {counts['invalid_numbers']}\n"
        f"• Invalid dates: {counts['invalid_dates']}\n"
        f"• Duplicate rows: {counts['duplicates']}",
        CONFIDENCE_HIGH,
        how + ['Score is based on issue density across all cells (missing + invalid + duplicates).'],
    )


def _answer_why_raw(plan, rows, all_rows, headers, how) -> Answer:
    return Answer(
        "Raw (dirty) data usually means it hasn't been prepared for analysis. Common reasons:\n"
        "• Missing values (incomplete records)\n"
        "• Invalid formats (text where numbers/dates should be)\n"
        "• Duplicate rows (double-counting sales)\n"
        '• Inconsistent categories/names (e.g., "Electronics" vs "electronics")\n\n'
        "AutoInsight detects these issues and cleans them so results are reliable.",
        CONFIDENCE_HIGH, how,
    )


def _answer_top_values(plan, rows, all_rows, headers, how) -> Answer:
    column = plan.resolved_column
    if column is None:
        return Answer(
            "I can do top lists, but I couldn't identify which column you meant. "
            'Try: "top 5 customers" or "top 5 products".',
            CONFIDENCE_MEDIUM, how,
        )
    tops = top_values(rows, column, plan.top_n or DEFAULT_TOP_N)
    if not tops:
        return Answer(f'No values found in column "{column}".', CONFIDENCE_MEDIUM, how)

    listing = '\n'.join(f"{i}. {value} ({count})" for i, (value, count) in enumerate(tops, start=1))
    return Answer(
        f"Top {plan.top_n} values in **{column}**:\n{listing}",
        CONFIDENCE_HIGH, how + [f"Computed frequency counts for column: {column}"],
    )


def _answer_sum(plan, rows, all_rows, headers, how) -> Answer:
    metric = plan.metric_column
    if metric is None:
        return Answer(
            "I can calculate totals, but I couldn't find a revenue/sales column. "
            'Try using the exact column name (e.g., "total Amount").',
            CONFIDENCE_MEDIUM, how,
        )
    total, used, skipped = sum_column(rows, metric)
    return Answer(
        f"Total **{metric}** = **{total:.2f}**\n"
        f"({used} rows used, {skipped} skipped due to missing/invalid values)",
        CONFIDENCE_HIGH, how + [f"Summed numeric values from column: {metric}"],
    )


def _answer_group_sum(plan, rows, all_rows, headers, how) -> Answer:
    group_column, metric = plan.group_by_column, plan.metric_column
    if group_column is None or metric is None:
        return Answer(
            "I can do sales by category/product/customer, but I couldn't find the "
            "needed columns. Try using the exact column names.",
            CONFIDENCE_MEDIUM,
            how + [f"groupBy={group_column or 'missing'}, metric={metric or 'missing'}"],
        )

    top_n = plan.top_n or DEFAULT_TOP_N
    groups, skipped = group_sum(rows, group_column, metric, top_n)
    if not groups:
        return Answer(f'No grouped results found for "{group_column}".', CONFIDENCE_MEDIUM, how)

    text = f"Top {top_n} **{group_column}** by **{metric}**:\n" + '\n'.join(
        f"{i}. {group}: {value:.2f}" for i, (group, value) in enumerate(groups, start=1)
    )
    if skipped:
        text += f"\n\n({skipped} rows skipped due to invalid/missing {metric})"
    return Answer(text, CONFIDENCE_HIGH,
                  how + [f"Grouped by {group_column} and summed {metric}."])


def _answer_unknown(plan, rows, all_rows, headers, how) -> Answer:
    examples = '\n'.join(f'• "{example}"' for example in EXAMPLE_QUESTIONS)
    return Answer(
        f"I didn't fully understand that question yet.\n\nTry one of these:\n{examples}",
        CONFIDENCE_LOW, how,
    )


def _answer_outlier_overview(rows: Sequence[Row], headers: Sequence[str], how: List[str]) -> Answer:
    lines = []
    for column in infer_schema(headers, rows):
        if column.inferred_type != TYPE_NUMBER:
            continue
        values = [v for _, v in numeric_column(rows, column.name)]
        result = detect_outliers_iqr(values)
        if result.count:
            sample = ', '.join(format_cell(v) for v in result.outliers[:5])
            lines.append(f"• {column.name}: {result.count} outliers ({sample})")

    if not lines:
        return Answer("✅ No IQR outliers found in numeric columns.", CONFIDENCE_HIGH,
                      how + ['Checked every numeric column with the 1.5×IQR rule.'])
    return Answer(
        "⚠️ **Outliers by column**\n" + '\n'.join(lines),
        CONFIDENCE_HIGH, how + ['Checked every numeric column with the 1.5×IQR rule.'],
    )


_HANDLERS = {
    Intent.WHY_RAW: _answer_why_raw,
    Intent.QUALITY_SUMMARY: _answer_quality_summary,
    Intent.LIST_DUPLICATES: _answer_list_duplicates,
    Intent.COUNT_DUPLICATES: _answer_count_duplicates,
    Intent.COUNT_ROWS: _answer_count_rows,
    Intent.COUNT_NAME: _answer_count_name,
    Intent.TOP_VALUES: _answer_top_values,
    Intent.GROUP_SUM: _answer_group_sum,
    Intent.SUM: _answer_sum,
    Intent.UNKNOWN: _answer_unknown,
}


def _base_how(plan: QueryPlan, considered: int, total: int) -> List[str]:
    how = []
    if plan.filters:
        how.append("Filters applied: " + ', '.join(f.describe() for f in plan.filters))
    else:
        how.append('No filters applied.')
    how.append(f"Rows considered: {considered:,} (out of {total:,})")
    if plan.filters and considered == 0:
        how.append('No rows matched the filters.')
    return how


def execute_plan(plan: QueryPlan, rows: Sequence[Row], headers: Sequence[str]) -> Answer:
    """Filter the rows and run the handler for the plan's intent."""
    filtered = apply_plan_filters(rows, plan.filters)
    how = _base_how(plan, len(filtered), len(rows))
    logger.debug(f"Executing {plan.intent.value} over {len(filtered)} of {len(rows)} rows")
    return _HANDLERS[plan.intent](plan, filtered, rows, headers, how)


# =================== Conversation context ===================

def conversation_context(recent_questions: Sequence[str]) -> str:
    """
    Topic of the last few user questions.

    Returns:
        One of ``missing_values``, ``duplicates``, ``invalid_types``,
        ``anomalies`` or an empty string
    """
    text = ' '.join(q.lower() for q in list(recent_questions)[-4:])
    if 'missing' in text or 'null' in text:
        return CONTEXT_MISSING
    if 'duplicate' in text:
        return CONTEXT_DUPLICATES
    if 'invalid' in text or 'type' in text:
        return CONTEXT_INVALID
    if 'anomal' in text or 'outlier' in text:
        return CONTEXT_ANOMALIES
    return ''


def _follow_up(plan: QueryPlan,
               context: str,
               rows: Sequence[Row],
               headers: Sequence[str]) -> Optional[Answer]:
    if context == CONTEXT_DUPLICATES:
        follow = QueryPlan(intent=Intent.COUNT_DUPLICATES, filters=plan.filters)
    elif context in (CONTEXT_MISSING, CONTEXT_INVALID):
        follow = QueryPlan(intent=Intent.QUALITY_SUMMARY, filters=plan.filters)
    elif context == CONTEXT_ANOMALIES:
        filtered = apply_plan_filters(rows, plan.filters)
        answer = _answer_outlier_overview(filtered, headers, _base_how(plan, len(filtered), len(rows)))
        answer.how.append(f"Interpreted as a follow-up on: {context}")
        return answer
    else:
        return None

    answer = execute_plan(follow, rows, headers)
    answer.how.append(f"Interpreted as a follow-up on: {context}")
    return answer


def answer_question(question: str,
                    rows: Sequence[Row],
                    headers: Sequence[str],
                    prior_context: Optional[str] = None) -> Answer:
    """
    Answer a free-text question about the rows.

    Args:
        question: The user's question
        rows: Records keyed by header
        headers: Column names
        prior_context: Topic from ``conversation_context`` used to interpret
            follow-up questions the rules do not recognise

    Returns:
        Answer with text, confidence and the explainability trail
    """
    if not rows or not headers:
        return Answer("I don't have any rows to analyze yet. Upload a CSV first.", CONFIDENCE_LOW, [])

    plan = plan_question(question or '', headers)
    logger.info(f"Question planned as {plan.intent.value}")

    if plan.intent is Intent.UNKNOWN and prior_context:
        answer = _follow_up(plan, prior_context, rows, headers)
        if answer is not None:
            return answer

    return execute_plan(plan, rows, headers)
