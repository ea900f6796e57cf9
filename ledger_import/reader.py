"""
reader.py: tabular reader for ledger-import

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods

Public API:
    table = read_table("path/to/export.csv")
    table.headers, table.rows, table.row_numbers

The first non-empty row is the header. Every other fully empty row is
dropped. Spreadsheet cells that hold dates come back as datetime values;
text files come back as strings.

Raises:
    UnsupportedFormatError  for unknown extensions (checked before reading)
    EmptyFileError          when no data rows remain after filtering
    FileNotFoundError       if a path is given and does not exist
    ImportError             if an optional spreadsheet engine is missing
"""

from __future__ import annotations

import csv
import io
import logging
from collections import Counter
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any, BinaryIO, Iterable, Optional, Union

import chardet
import pandas as pd

from ledger_import.errors import EmptyFileError, UnsupportedFormatError
from ledger_import.models import Cell, ParsedTable

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS        = {".csv", ".tsv", ".txt"}
SPREADSHEET_FORMATS = {".xlsx", ".xlsm", ".xls", ".ods"}
ALL_FORMATS         = TEXT_FORMATS | SPREADSHEET_FORMATS

Source = Union[str, Path, bytes, BinaryIO]


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw[:200_000])
    return result.get("encoding") or "utf-8"


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. Try latin-1
      4. CP1252 with replace (never crashes)

    Also strips embedded null bytes and the UTF-8 byte-order mark.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    Uses csv.Sniffer first; falls back to scoring each candidate delimiter by
    column-count consistency and column width.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in (",", ";", "\t", "|"):
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if not rows:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = (mode_width * 2.0) + (mode_count / len(rows)) * mode_width
        if len(rows[0]) == mode_width:
            score += 1.0
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# CELL NORMALISATION
# ══════════════════════════════════════════════════════════════════════════════

def _normalise_cell(value: Any) -> Cell:
    if value is None:
        return None
    if isinstance(value, str):
        return value.replace("\x00", "")
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        if value.tzinfo is not None:
            value = value.tz_convert(None)
        return value.to_pydatetime()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return value
    if isinstance(value, time):
        return value.isoformat()
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if pd.api.types.is_integer(value):
        return int(value)
    if pd.api.types.is_float(value):
        number = float(value)
        return int(number) if number.is_integer() and abs(number) < 1e15 else number
    return str(value)


def _is_blank(cell: Cell) -> bool:
    if cell is None:
        return True
    if isinstance(cell, str):
        return not cell.strip()
    return False


def _header_text(cell: Cell, position: int) -> str:
    if isinstance(cell, (datetime, date)):
        text = cell.isoformat()
    else:
        text = "" if cell is None else str(cell).strip()
    return text or f"Column {position + 1}"


# ══════════════════════════════════════════════════════════════════════════════
# TABLE ASSEMBLY
# ══════════════════════════════════════════════════════════════════════════════

def _assemble(
    numbered_rows: Iterable[tuple[int, list[Cell]]],
    *,
    source_name: str,
    detected_format: str,
    encoding: Optional[str] = None,
    delimiter: Optional[str] = None,
    sheet_name: Optional[str] = None,
    warnings: Optional[list[str]] = None,
) -> ParsedTable:
    warnings = list(warnings or [])
    header: list[Cell] | None = None
    rows: list[tuple[Cell, ...]] = []
    row_numbers: list[int] = []
    dropped_blank = 0

    for row_number, cells in numbered_rows:
        if all(_is_blank(cell) for cell in cells):
            if header is not None:
                dropped_blank += 1
            continue
        if header is None:
            header = cells
            continue
        rows.append(tuple(cells))
        row_numbers.append(row_number)

    if header is None:
        raise EmptyFileError(f"{source_name or 'File'} is empty: no header row found")
    if not rows:
        raise EmptyFileError(f"{source_name or 'File'} has a header row but no data rows")

    def column_has_values(index: int) -> bool:
        return any(index < len(row) and not _is_blank(row[index]) for row in rows)

    # Trailing blank header cells with no data under them are export padding.
    header_width = len(header)
    while header_width > 1 and _is_blank(header[header_width - 1]) and not column_has_values(header_width - 1):
        header_width -= 1
    headers = [_header_text(cell, i) for i, cell in enumerate(header[:header_width])]

    width = max(len(row) for row in rows)
    overflow = [i for i in range(header_width, width) if column_has_values(i)]
    if overflow:
        headers.extend(f"Column {i + 1}" for i in range(header_width, max(overflow) + 1))
        warnings.append(
            f"{len(overflow)} column(s) had values but no header; named them "
            + ", ".join(f"'Column {i + 1}'" for i in overflow)
        )

    # Repeated names all point at the left-most column when mapped.
    for name, count in Counter(headers).items():
        if count > 1:
            warnings.append(f"Header '{name}' appears {count} times; only its first column can be mapped")

    if dropped_blank:
        logger.info("Dropped %d blank row(s) from %s", dropped_blank, source_name)

    return ParsedTable(
        headers=tuple(headers),
        rows=tuple(rows),
        row_numbers=tuple(row_numbers),
        source_name=source_name,
        detected_format=detected_format,
        encoding=encoding,
        delimiter=delimiter,
        sheet_name=sheet_name,
        warnings=tuple(warnings),
    )


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _numbered_text_rows(text: str, delimiter: str) -> Iterable[tuple[int, list[Cell]]]:
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    start_line = 1
    for cells in reader:
        # Quoted cells may span several physical lines; number rows by the line they start on.
        yield start_line, list(cells)
        start_line = reader.line_num + 1


def _validate_txt_table(text: str, delimiter: str) -> None:
    rows = [
        row
        for row in csv.reader(io.StringIO(text), delimiter=delimiter)
        if any(cell.strip() for cell in row)
    ][:50]
    if sum(1 for row in rows if len(row) > 1) < 2:
        raise UnsupportedFormatError(
            ".txt file does not appear to contain delimited/tabular data "
            f"(detected delimiter {delimiter!r} but fewer than 2 rows contain multiple fields)"
        )


def _read_text(raw: bytes, suffix: str, source_name: str) -> ParsedTable:
    encoding = _detect_encoding(raw)
    text = _read_text_safely(raw, encoding)
    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)

    if suffix == ".txt":
        _validate_txt_table(text, delimiter)

    return _assemble(
        _numbered_text_rows(text, delimiter),
        source_name=source_name,
        detected_format=suffix.lstrip("."),
        encoding=encoding,
        delimiter=delimiter,
    )


def _require_engine(suffix: str) -> Optional[str]:
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd; run: pip install xlrd")
        return "xlrd"
    if suffix == ".ods":
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy; run: pip install odfpy")
        return "odf"
    return "openpyxl"


def _read_spreadsheet(raw: bytes, suffix: str, source_name: str) -> ParsedTable:
    engine = _require_engine(suffix)
    warnings: list[str] = []

    try:
        with pd.ExcelFile(io.BytesIO(raw), engine=engine) as workbook:
            sheet_names = list(workbook.sheet_names)
            if not sheet_names:
                raise EmptyFileError(f"{source_name or 'Workbook'} contains no sheets")
            active = sheet_names[0]
            frame = workbook.parse(active, header=None, dtype=object)
    except (EmptyFileError, ImportError):
        raise
    except Exception as exc:
        raise ValueError(f"Could not read workbook: {exc}") from exc

    if len(sheet_names) > 1:
        warnings.append(
            f"Multiple sheets found ({len(sheet_names)} total); "
            f"used '{active}'. Ignored: {sheet_names[1:]}"
        )

    numbered = (
        (index + 1, [_normalise_cell(value) for value in values])
        for index, values in enumerate(frame.itertuples(index=False, name=None))
    )
    return _assemble(
        numbered,
        source_name=source_name,
        detected_format=suffix.lstrip("."),
        sheet_name=str(active),
        warnings=warnings,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def detect_format(filename: str) -> str:
    """Return the lower-cased extension, or raise UnsupportedFormatError."""
    suffix = Path(filename).suffix.lower()
    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise UnsupportedFormatError(
            f"Unsupported file type '{suffix or '[missing extension]'}'. Supported: {supported}"
        )
    return suffix


def read_table(source: Source, *, filename: Optional[str] = None) -> ParsedTable:
    """
    Read a delimited-text or spreadsheet file into a ParsedTable.

    Args:
        source:   path, raw bytes, or a binary file object (for example a
                  Streamlit UploadedFile).
        filename: name used to sniff the format when source is not a path.
                  Defaults to source.name for file objects.
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        suffix = detect_format(filename or path.name)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        raw = path.read_bytes()
        source_name = path.name
    else:
        name = filename or getattr(source, "name", None)
        if not name:
            raise UnsupportedFormatError("Cannot detect the file type without a file name")
        suffix = detect_format(name)
        raw = source if isinstance(source, bytes) else source.read()
        source_name = Path(name).name

    if suffix in TEXT_FORMATS:
        return _read_text(raw, suffix, source_name)
    return _read_spreadsheet(raw, suffix, source_name)
