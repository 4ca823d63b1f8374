"""
Raw Row Splitting

Turns pasted or uploaded text into RawRows. Spreadsheet copies arrive
tab-separated, CSV exports comma-separated; the delimiter is picked from
the first non-empty line.

Line numbers are kept from the original text (header and blank lines
included) so every error can point the user at the line they pasted.
"""

import csv
from typing import Optional

from ledgerflow.models.records import RawRow


def detect_delimiter(text: str) -> str:
    """Tab when the first non-empty line contains one, comma otherwise."""
    for line in text.splitlines():
        if line.strip():
            return "\t" if "\t" in line else ","
    return ","


def split_rows(
    text: str,
    skip_header: bool = True,
    delimiter: Optional[str] = None,
) -> list[RawRow]:
    """
    Split text into RawRows.

    Args:
        text: The pasted or uploaded content
        skip_header: Drop the first non-empty line
        delimiter: Force a delimiter instead of detecting one

    Blank lines are skipped but still counted. NUL bytes are dropped;
    csv.reader rejects them on older interpreters.
    """
    text = text.replace("\x00", "")
    delimiter = delimiter or detect_delimiter(text)
    rows = []
    header_skipped = not skip_header

    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        if not header_skipped:
            header_skipped = True
            continue

        # One line at a time so quoted cells never swallow a line break
        cells = next(csv.reader([line], delimiter=delimiter, skipinitialspace=True))
        rows.append(RawRow(line_number=line_number, cells=cells))

    return rows
