"""Sequential import of classified rows into a sink."""

from __future__ import annotations

import logging
from dataclasses import replace
from functools import reduce
from typing import Callable, Iterable, Optional

from ledger_import.models import ClassifiedRow, ImportProgress, ImportTally, Tag
from ledger_import.sinks import RecordSink
from ledger_import.validator import partition_rows

logger = logging.getLogger(__name__)

CREATED = "created"
FAILED = "failed"

ProgressCallback = Callable[[ImportProgress], None]
StopSignal = Callable[[], bool]


def submit_row(sink: RecordSink, row: ClassifiedRow) -> None:
    if row.tag is Tag.EXPENSE:
        sink.create_expense(row.draft)
    else:
        sink.create_income(row.draft)


def run_import(
    rows: Iterable[ClassifiedRow],
    sink: RecordSink,
    *,
    on_progress: Optional[ProgressCallback] = None,
    should_stop: Optional[StopSignal] = None,
) -> ImportTally:
    """
    Submit every valid row, in order, one call at a time.

    A sink failure is logged and counted against that row only; the batch
    carries on. should_stop is polled before each row, and once it returns
    true the remaining rows are counted as not attempted. Invalid rows are
    never sent and are reported as skipped_invalid.
    """
    outcome = partition_rows(list(rows))
    total = len(outcome.valid)

    def step(tally: ImportTally, row: ClassifiedRow) -> ImportTally:
        if tally.cancelled or (should_stop is not None and should_stop()):
            if not tally.cancelled:
                logger.info("Import stopped before row %s", row.source_row_number)
            return replace(tally, cancelled=True, not_attempted=tally.not_attempted + 1)

        try:
            submit_row(sink, row)
        except Exception as exc:
            logger.warning("Row %s failed on submit: %s", row.source_row_number, exc)
            tally = replace(
                tally,
                attempted=tally.attempted + 1,
                failed_on_submit=tally.failed_on_submit + 1,
                failures=tally.failures + ((row.source_row_number, str(exc)),),
            )
            result = FAILED
        else:
            if row.tag is Tag.EXPENSE:
                tally = replace(tally, attempted=tally.attempted + 1, expenses_created=tally.expenses_created + 1)
            else:
                tally = replace(tally, attempted=tally.attempted + 1, income_created=tally.income_created + 1)
            result = CREATED

        if on_progress is not None:
            on_progress(ImportProgress(tally.attempted, total, row.source_row_number, result))
        return tally

    tally = reduce(step, outcome.valid, ImportTally(skipped_invalid=len(outcome.invalid)))
    logger.info(
        "Import finished: %s created, %s failed, %s invalid skipped%s",
        tally.created,
        tally.failed_on_submit,
        tally.skipped_invalid,
        " (cancelled)" if tally.cancelled else "",
    )
    return tally
