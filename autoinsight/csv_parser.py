"""
Best-effort CSV parser.

Turns raw text into a header list and a matrix of string cells. Quoted fields
may contain commas and doubled quotes. Malformed quoting never raises: the
worst case is a mis-tokenized line, and every non-blank line yields a row.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Tuple

from .models import Row

logger = logging.getLogger(__name__)

_COMMENT_LINE = re.compile(r'^\s*#(\s|$)')
_QUOTE = '"'
_DELIMITER = ','


@dataclass
class ParsedCsv:
    """Headers plus string rows exactly as tokenized (rows may be ragged)."""
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)


def split_lines(text: str) -> List[str]:
    """Normalize line endings and drop blank and comment lines."""
    if text.startswith('\ufeff'):
        text = text[1:]
    normalized = text.replace('\r\n', '\n').replace('\r', '\n')
    return [
        line for line in normalized.split('\n')
        if line.strip() and not _COMMENT_LINE.match(line)
    ]


def _clean_field(value: str) -> str:
    # Unescaped quotes only toggle quoting and are never appended, so any quote
    # left here came from a doubled "" and is part of the value.
    return value.strip()


def parse_line(line: str) -> List[str]:
    """Tokenize one CSV line with a quote-aware state machine."""
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0

    while i < len(line):
        ch = line[i]
        if ch == _QUOTE:
            if in_quotes and i + 1 < len(line) and line[i + 1] == _QUOTE:
                # Escaped quote inside a quoted field
                current.append(_QUOTE)
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == _DELIMITER and not in_quotes:
            fields.append(_clean_field(''.join(current)))
            current = []
        else:
            current.append(ch)
        i += 1

    fields.append(_clean_field(''.join(current)))
    return fields


def _unique_headers(raw_headers: List[str]) -> List[str]:
    headers: List[str] = []
    seen = set()
    for position, name in enumerate(raw_headers, start=1):
        base = name or f"column_{position}"
        candidate = base
        suffix = 2
        while candidate in seen:
            candidate = f"{base}_{suffix}"
            suffix += 1
        seen.add(candidate)
        headers.append(candidate)
    return headers


def parse_csv(text: str) -> ParsedCsv:
    """
    Parse CSV text into headers and string rows.

    The first remaining line is always the header row. Duplicate or empty
    header names are made unique so they can key row dictionaries.

    Args:
        text: Raw file content

    Returns:
        ParsedCsv with headers and (possibly ragged) rows
    """
    lines = split_lines(text or '')
    if not lines:
        return ParsedCsv()

    headers = _unique_headers(parse_line(lines[0]))
    rows = [parse_line(line) for line in lines[1:]]

    logger.debug(f"Parsed CSV: {len(headers)} columns, {len(rows)} rows")
    return ParsedCsv(headers=headers, rows=rows)


def build_records(headers: List[str], rows: List[List[str]]) -> List[Row]:
    """
    Convert string rows into records keyed by header.

    Short rows are padded with empty strings; fields beyond the header count
    are ignored.
    """
    records: List[Row] = []
    width = len(headers)
    for values in rows:
        padded = list(values[:width]) + [''] * max(0, width - len(values))
        records.append(dict(zip(headers, padded)))
    return records


def parse_records(text: str) -> Tuple[List[str], List[Row]]:
    """Parse CSV text straight into ``(headers, records)``."""
    parsed = parse_csv(text)
    return parsed.headers, build_records(parsed.headers, parsed.rows)
