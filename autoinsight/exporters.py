"""
Export helpers turning row collections into CSV, JSON, HTML and Excel.

CSV text is produced directly so it round-trips through ``csv_parser``;
the other formats go through a pandas DataFrame.
"""

import html
import re
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import pandas as pd

from .models import Row, format_cell


def _csv_field(value) -> str:
    text = format_cell(value)
    if not text:
        # A bare empty line would be dropped as blank on the way back in.
        return '""'
    if any(ch in text for ch in (',', '"', '\n', '\r')) or text.startswith('#'):
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv_text(rows: Sequence[Row],
                headers: Sequence[str],
                comments: Optional[Iterable[str]] = None) -> str:
    """
    Render rows as CSV text.

    Fields containing commas, quotes or line breaks are quoted with embedded
    quotes doubled, and empty fields are written as ``""``. ``comments`` are appended as trailing ``# ...`` lines,
    which the parser skips when the file is read back.
    """
    lines = [','.join(_csv_field(h) for h in headers)]
    for row in rows:
        lines.append(','.join(_csv_field(row.get(h)) for h in headers))
    for comment in comments or ():
        # A line break inside a comment would start an unprefixed data line.
        lines.append("# " + re.sub(r'[\r\n]+', ' ', str(comment)))
    return '\n'.join(lines) + '\n'


def rows_to_dataframe(rows: Sequence[Row], headers: Sequence[str]) -> pd.DataFrame:
    """DataFrame with one column per header, in header order."""
    return pd.DataFrame(
        [[row.get(h) for h in headers] for row in rows],
        columns=list(headers),
    )


def to_json_text(rows: Sequence[Row], headers: Sequence[str]) -> str:
    df = rows_to_dataframe(rows, headers)
    return df.to_json(orient='records', force_ascii=False, indent=2)


def to_html_text(rows: Sequence[Row], headers: Sequence[str], title: Optional[str] = None) -> str:
    """Standalone HTML page with the rows as a table."""
    table = rows_to_dataframe(rows, headers).to_html(index=False, na_rep='', border=0)
    heading = f"<h1>{html.escape(title)}</h1>\n" if title else ''
    return (
        "<!DOCTYPE html>\n<html>\n<head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title or 'AutoInsight export')}</title></head>\n"
        f"<body>\n{heading}{table}\n</body>\n</html>\n"
    )


def write_excel(rows: Sequence[Row], headers: Sequence[str], output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    rows_to_dataframe(rows, headers).to_excel(output_path, index=False, engine='openpyxl')
    return output_path
