"""CSV export of the rows that could not be imported."""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Sequence

from ledger_import.models import Cell, ClassifiedRow

EXPORT_PREFIX = "ledger-import-errors"
ERROR_COLUMN = "Error"


def export_filename(stamp: str) -> str:
    return f"{EXPORT_PREFIX}-{stamp}.csv"


def _cell_text(value: Cell) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def invalid_rows_csv(headers: Sequence[str], rows: Sequence[ClassifiedRow]) -> str:
    """
    Original headers plus a trailing Error column. Short rows are padded so
    the error always lands in the last column; every field is quoted.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([*headers, ERROR_COLUMN])
    width = len(headers)
    for row in rows:
        if row.is_valid:
            continue
        cells = [_cell_text(value) for value in row.raw[:width]]
        cells.extend([""] * (width - len(cells)))
        writer.writerow([*cells, "; ".join(row.errors)])
    return buffer.getvalue()


def write_invalid_rows(path: Path, headers: Sequence[str], rows: Sequence[ClassifiedRow]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(invalid_rows_csv(headers, rows), encoding="utf-8")
    return path
