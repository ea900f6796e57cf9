"""
Column auto-detection.

Maps the headers of an uploaded file onto the canonical fields in
FIELD_DICTIONARY by plain substring matching. Headers are not reserved:
two fields may end up pointing at the same header (for example a column
named "Income" satisfies both the amount and the category patterns).
"""

from __future__ import annotations

from typing import Optional, Sequence

from ledger_import.errors import MissingRequiredMappingError
from ledger_import.fields import FIELD_DICTIONARY, FieldSpec, get_field
from ledger_import.models import ColumnMapping

SKIP = "-- skip --"


def _normalise_header(header: str) -> str:
    return " ".join(str(header).strip().lower().split())


def header_matches(header: str, pattern: str) -> bool:
    text = _normalise_header(header)
    return text == pattern or pattern in text


def header_fits(header: str, spec: FieldSpec) -> bool:
    if _normalise_header(header) in spec.exact:
        return True
    return any(header_matches(header, pattern) for pattern in spec.patterns)


def detect_field(spec: FieldSpec, headers: Sequence[str]) -> Optional[str]:
    """First header, left to right, that fits any of the field's patterns."""
    for header in headers:
        if header_fits(header, spec):
            return header
    return None


def detect_columns(headers: Sequence[str]) -> ColumnMapping:
    return ColumnMapping({spec.key: detect_field(spec, headers) for spec in FIELD_DICTIONARY})


def mapping_options(headers: Sequence[str]) -> list[str]:
    """Choices for one field in the mapping UI: the skip sentinel, then every header."""
    options = [SKIP]
    for header in headers:
        if header not in options:
            options.append(header)
    return options


def apply_choice(mapping: ColumnMapping, key: str, choice: Optional[str], headers: Sequence[str]) -> ColumnMapping:
    get_field(key)
    if choice is None or choice == SKIP:
        return mapping.assign(key, None)
    if choice not in headers:
        raise ValueError(f"'{choice}' is not a column in this file")
    return mapping.assign(key, choice)


def missing_required(mapping: ColumnMapping) -> list[str]:
    return [spec.label for spec in FIELD_DICTIONARY if spec.required and mapping.header_for(spec.key) is None]


def require_complete(mapping: ColumnMapping) -> None:
    missing = missing_required(mapping)
    if missing:
        raise MissingRequiredMappingError(missing)
