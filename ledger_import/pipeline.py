"""
The import wizard as an explicit state machine.

    upload -> mapping -> preview -> importing -> summary
                 ^          |
                 +----------+        reset: any stage -> upload

Each stage carries its own frozen state object. Calling an operation in a
stage that does not allow it raises IllegalTransitionError, so things like
editing a row mid-import cannot happen.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any, BinaryIO, Mapping, Optional, Union

from ledger_import.classifier import classify_table
from ledger_import.correction import CorrectionEditor, splice_row
from ledger_import.detector import apply_choice, detect_columns, require_complete
from ledger_import.errors import IllegalTransitionError
from ledger_import.fields import FIELD_KEYS
from ledger_import.executor import ProgressCallback, StopSignal, run_import
from ledger_import.models import (
    ClassifiedRow,
    ColumnMapping,
    ImportProgress,
    ImportTally,
    ParsedTable,
    Tag,
)
from ledger_import.reader import read_table
from ledger_import.sinks import RecordSink
from ledger_import.validator import partition_rows

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    PREVIEW = "preview"
    IMPORTING = "importing"
    SUMMARY = "summary"


@dataclass(frozen=True)
class UploadState:
    stage = Stage.UPLOAD


@dataclass(frozen=True)
class MappingState:
    table: ParsedTable
    mapping: ColumnMapping

    stage = Stage.MAPPING


@dataclass(frozen=True)
class PreviewState:
    table: ParsedTable
    mapping: ColumnMapping
    rows: tuple[ClassifiedRow, ...]
    editor: Optional[CorrectionEditor] = None

    stage = Stage.PREVIEW


@dataclass(frozen=True)
class ImportingState:
    table: ParsedTable
    mapping: ColumnMapping
    rows: tuple[ClassifiedRow, ...]
    progress: ImportProgress

    stage = Stage.IMPORTING


@dataclass(frozen=True)
class SummaryState:
    table: ParsedTable
    mapping: ColumnMapping
    rows: tuple[ClassifiedRow, ...]
    tally: ImportTally

    stage = Stage.SUMMARY


SessionState = Union[UploadState, MappingState, PreviewState, ImportingState, SummaryState]


@dataclass(frozen=True)
class PreviewSummary:
    total_rows: int
    valid_rows: int
    invalid_rows: int
    expense_rows: int
    income_rows: int
    expense_total: Decimal
    income_total: Decimal
    tip_total: Decimal

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "expense_rows": self.expense_rows,
            "income_rows": self.income_rows,
            "expense_total": str(self.expense_total),
            "income_total": str(self.income_total),
            "tip_total": str(self.tip_total),
        }


def summarize_rows(rows: tuple[ClassifiedRow, ...]) -> PreviewSummary:
    outcome = partition_rows(rows)
    expenses = [row.draft for row in outcome.valid if row.tag is Tag.EXPENSE]
    income = [row.draft for row in outcome.valid if row.tag is Tag.INCOME]
    return PreviewSummary(
        total_rows=outcome.total,
        valid_rows=len(outcome.valid),
        invalid_rows=len(outcome.invalid),
        expense_rows=len(expenses),
        income_rows=len(income),
        expense_total=sum((draft.amount for draft in expenses), Decimal("0")),
        income_total=sum((draft.amount for draft in income), Decimal("0")),
        tip_total=sum((draft.tip for draft in income), Decimal("0")),
    )


class ImportSession:
    """Owns the one file being imported and every decision made about it."""

    def __init__(self) -> None:
        self.state: SessionState = UploadState()
        # source row number -> (edited values, chosen tag); survives mapping changes
        self.corrections: dict[int, tuple[dict[str, Any], Tag]] = {}

    @property
    def stage(self) -> Stage:
        return self.state.stage

    def _require(self, operation: str, *allowed: type) -> Any:
        if not isinstance(self.state, allowed):
            raise IllegalTransitionError(operation, self.stage.value)
        return self.state

    # ── upload ────────────────────────────────────────────────────────────────

    def load(self, source: Union[str, bytes, BinaryIO], *, filename: Optional[str] = None) -> MappingState:
        self._require("load a file", UploadState)
        table = read_table(source, filename=filename)
        mapping = detect_columns(table.headers)
        self.corrections = {}
        self.state = MappingState(table=table, mapping=mapping)
        logger.info(
            "Loaded %s: %s data rows, mapped %s",
            table.source_name or "upload",
            len(table.rows),
            ", ".join(mapping.mapped_keys()) or "nothing",
        )
        return self.state

    # ── mapping ───────────────────────────────────────────────────────────────

    def choose(self, key: str, choice: Optional[str]) -> ColumnMapping:
        state = self._require("change the column mapping", MappingState)
        mapping = apply_choice(state.mapping, key, choice, state.table.headers)
        self.state = replace(state, mapping=mapping)
        return mapping

    def set_mapping(self, mapping: ColumnMapping) -> ColumnMapping:
        state = self._require("change the column mapping", MappingState)
        # Rebuilt through apply_choice so the skip option becomes None.
        rebuilt = ColumnMapping({key: None for key in FIELD_KEYS})
        for key, header in mapping.as_dict().items():
            rebuilt = apply_choice(rebuilt, key, header, state.table.headers)
        self.state = replace(state, mapping=rebuilt)
        return rebuilt

    def advance_to_preview(self) -> PreviewState:
        state = self._require("preview rows", MappingState)
        require_complete(state.mapping)
        rows = tuple(classify_table(state.table, state.mapping, self.corrections))
        self.state = PreviewState(table=state.table, mapping=state.mapping, rows=rows)
        return self.state

    # ── preview ───────────────────────────────────────────────────────────────

    def back_to_mapping(self) -> MappingState:
        state = self._require("go back to mapping", PreviewState)
        self.state = MappingState(table=state.table, mapping=state.mapping)
        return self.state

    def preview_summary(self) -> PreviewSummary:
        state = self._require("summarise rows", PreviewState, ImportingState, SummaryState)
        return summarize_rows(state.rows)

    def open_correction(self, row_number: int) -> CorrectionEditor:
        state = self._require("edit a row", PreviewState)
        for row in state.rows:
            if row.source_row_number == row_number:
                editor = CorrectionEditor.open(state.table, state.mapping, row)
                self.state = replace(state, editor=editor)
                return editor
        raise KeyError(f"No row {row_number} in this import")

    def save_correction(self, values: Mapping[str, Any], tag: Tag) -> ClassifiedRow:
        """
        Save the open editor. On success the row is spliced back and the
        editor closes; otherwise the editor stays open with the new errors.
        """
        state = self._require("save a correction", PreviewState)
        if state.editor is None:
            raise IllegalTransitionError("save a correction with no row open", self.stage.value)

        editor = state.editor
        row = editor.submit(values, tag)
        if not row.is_valid:
            self.state = replace(state, editor=editor.revise(values, tag, row.errors))
            return row

        saved = dict(editor.values)
        saved.update(values)
        self.corrections[editor.row_number] = (saved, tag)
        self.state = replace(state, rows=tuple(splice_row(state.rows, row)), editor=None)
        logger.info("Row %s corrected as %s", row.source_row_number, tag.value)
        return row

    def cancel_correction(self) -> None:
        state = self._require("close the editor", PreviewState)
        self.state = replace(state, editor=None)

    def run_import(
        self,
        sink: RecordSink,
        *,
        on_progress: Optional[ProgressCallback] = None,
        should_stop: Optional[StopSignal] = None,
    ) -> ImportTally:
        state = self._require("start the import", PreviewState)
        if state.editor is not None:
            raise IllegalTransitionError("start the import with a row still open for editing", self.stage.value)

        total = len(partition_rows(state.rows).valid)
        self.state = ImportingState(
            table=state.table,
            mapping=state.mapping,
            rows=state.rows,
            progress=ImportProgress(0, total),
        )

        def track(progress: ImportProgress) -> None:
            self.state = replace(self.state, progress=progress)
            if on_progress is not None:
                on_progress(progress)

        try:
            tally = run_import(state.rows, sink, on_progress=track, should_stop=should_stop)
        except BaseException:
            self.state = state
            raise
        self.state = SummaryState(table=state.table, mapping=state.mapping, rows=state.rows, tally=tally)
        return tally

    # ── any stage ─────────────────────────────────────────────────────────────

    def reset(self) -> UploadState:
        self.state = UploadState()
        self.corrections = {}
        return self.state
