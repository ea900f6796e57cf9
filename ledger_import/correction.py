"""
Single-row correction.

An editor is opened on one invalid row, pre-filled from the file's own
cells (never from the failed parse), and saved with an explicit
expense/income choice. A successful save produces a fresh ClassifiedRow
that is spliced back in at the same source row number.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, time
from typing import Any, Mapping, Optional, Sequence

from ledger_import.classifier import classify_values
from ledger_import.fields import EDITABLE_KEYS
from ledger_import.models import Cell, ClassifiedRow, ColumnMapping, ParsedTable, Tag


def _as_text(value: Cell) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime) and value.time() == time.min:
        return value.date().isoformat()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class CorrectionEditor:
    row_number: int
    values: Mapping[str, str] = field(default_factory=dict)
    tag: Tag = Tag.INCOME
    errors: tuple[str, ...] = ()
    raw: tuple[Cell, ...] = ()

    @classmethod
    def open(cls, table: ParsedTable, mapping: ColumnMapping, row: ClassifiedRow) -> "CorrectionEditor":
        if row.is_valid:
            raise ValueError(f"Row {row.source_row_number} has no errors to correct")
        values = {key: _as_text(table.cell(row.raw, mapping.header_for(key))) for key in EDITABLE_KEYS}
        return cls(
            row_number=row.source_row_number,
            values=values,
            tag=row.tag,
            errors=row.errors,
            raw=row.raw,
        )

    def submit(self, values: Optional[Mapping[str, Any]] = None, tag: Optional[Tag] = None) -> ClassifiedRow:
        """Re-validate and rebuild the row with the edited values and chosen tag."""
        merged = dict(self.values)
        merged.update(values or {})
        return classify_values(merged, row_number=self.row_number, raw=self.raw, tag=tag or self.tag)

    def revise(self, values: Mapping[str, Any], tag: Tag, errors: Sequence[str]) -> "CorrectionEditor":
        merged = dict(self.values)
        merged.update({key: _as_text(value) for key, value in values.items()})
        return replace(self, values=merged, tag=tag, errors=tuple(errors))


def splice_row(rows: Sequence[ClassifiedRow], replacement: ClassifiedRow) -> list[ClassifiedRow]:
    """Return rows with the one sharing replacement's source row number swapped out."""
    spliced = []
    found = False
    for row in rows:
        if row.source_row_number == replacement.source_row_number:
            spliced.append(replacement)
            found = True
        else:
            spliced.append(row)
    if not found:
        raise KeyError(f"No row {replacement.source_row_number} in this import")
    return spliced
