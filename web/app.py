#!/usr/bin/env python3
from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import Optional

import pandas as pd
import streamlit as st

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ledger_import.config import load_settings, timestamp_token  # noqa: E402
from ledger_import.detector import SKIP, mapping_options, missing_required  # noqa: E402
from ledger_import.errors import (  # noqa: E402
    EmptyFileError,
    IllegalTransitionError,
    MissingRequiredMappingError,
    UnsupportedFormatError,
)
from ledger_import.export import export_filename, invalid_rows_csv  # noqa: E402
from ledger_import.fields import EDITABLE_KEYS, FIELD_DICTIONARY, FIELDS_BY_KEY  # noqa: E402
from ledger_import.models import Tag  # noqa: E402
from ledger_import.pipeline import ImportSession, Stage  # noqa: E402
from ledger_import.reader import SPREADSHEET_FORMATS, TEXT_FORMATS  # noqa: E402
from ledger_import.sinks import RecordingSink, RestSink  # noqa: E402
from ledger_import.validator import partition_rows  # noqa: E402

SUPPORTED_EXTS = TEXT_FORMATS | SPREADSHEET_FORMATS
STEP_LABELS = {
    Stage.UPLOAD: "1. Upload",
    Stage.MAPPING: "2. Map columns",
    Stage.PREVIEW: "3. Preview",
    Stage.IMPORTING: "4. Importing",
    Stage.SUMMARY: "5. Summary",
}
POLL_SECONDS = 0.5


def ensure_state() -> None:
    st.session_state.setdefault("session", ImportSession())
    st.session_state.setdefault("import_job", None)
    st.session_state.setdefault("flash", None)


def session() -> ImportSession:
    return st.session_state["session"]


def flash(message: str) -> None:
    st.session_state["flash"] = message


def reset_wizard() -> None:
    job = st.session_state.get("import_job")
    if job and job["thread"].is_alive():
        job["stop"].set()
        job["thread"].join()
    session().reset()
    st.session_state["import_job"] = None
    for key in list(st.session_state.keys()):
        if key.startswith(("map_", "fix_")):
            del st.session_state[key]


def rows_frame(rows) -> pd.DataFrame:
    records = []
    for row in rows:
        if row.is_valid:
            records.append({"Row": row.source_row_number, "Type": row.tag.value, **row.draft.as_payload()})
        else:
            records.append({"Row": row.source_row_number, "Errors": "; ".join(row.errors)})
    return pd.DataFrame.from_records(records)


# ── Step 1: upload ────────────────────────────────────────────────────────────

def render_upload() -> None:
    uploaded = st.file_uploader(
        "Choose a CSV or spreadsheet file",
        type=[ext.lstrip(".") for ext in sorted(SUPPORTED_EXTS)],
        key="upload_input",
    )
    if uploaded is None:
        st.info("Supported: " + " ".join(sorted(SUPPORTED_EXTS)))
        return
    if st.button("Read file", type="primary"):
        try:
            session().load(uploaded.getvalue(), filename=uploaded.name)
        except (EmptyFileError, UnsupportedFormatError, ValueError, ImportError) as exc:
            st.error(str(exc))
            return
        st.rerun()


# ── Step 2: mapping ───────────────────────────────────────────────────────────

def render_mapping() -> None:
    state = session().state
    table = state.table
    st.caption(f"{table.source_name}: {len(table.rows)} data rows, format {table.detected_format}")
    for warning in table.warnings:
        st.warning(warning)

    options = mapping_options(table.headers)
    for spec in FIELD_DICTIONARY:
        current = state.mapping.header_for(spec.key)
        label = f"{spec.label}{' *' if spec.required else ''}"
        choice = st.selectbox(
            label,
            options=options,
            index=options.index(current) if current in options else 0,
            key=f"map_{spec.key}",
        )
        if choice != (current or SKIP):
            session().choose(spec.key, choice)

    st.dataframe(pd.DataFrame(list(table.rows[:10]), columns=list(table.headers)), width="stretch")

    missing = missing_required(session().state.mapping)
    if missing:
        st.warning("Still to map: " + ", ".join(missing))
    left, right = st.columns(2)
    if left.button("Start over"):
        reset_wizard()
        st.rerun()
    if right.button("Preview rows", type="primary", disabled=bool(missing)):
        try:
            session().advance_to_preview()
        except MissingRequiredMappingError as exc:
            st.error(str(exc))
            return
        st.rerun()


# ── Step 3: preview and corrections ───────────────────────────────────────────

def render_correction_form() -> None:
    editor = session().state.editor
    st.subheader(f"Fix row {editor.row_number}")
    for message in editor.errors:
        st.error(message)
    with st.form(key=f"fix_form_{editor.row_number}"):
        values = {}
        for key in EDITABLE_KEYS:
            values[key] = st.text_input(FIELDS_BY_KEY[key].label, value=editor.values.get(key, ""), key=f"fix_{editor.row_number}_{key}")
        tag_value = st.radio(
            "This row is",
            options=[Tag.INCOME.value, Tag.EXPENSE.value],
            index=0 if editor.tag is Tag.INCOME else 1,
            horizontal=True,
        )
        save = st.form_submit_button("Save row", type="primary")
        cancel = st.form_submit_button("Cancel")
    if save:
        row = session().save_correction(values, Tag(tag_value))
        if row.is_valid:
            flash(f"Row {row.source_row_number} saved as {row.tag.value}.")
        st.rerun()
    if cancel:
        session().cancel_correction()
        st.rerun()


def start_import(sink) -> None:
    stop = threading.Event()
    job = {"stop": stop, "progress": None, "error": None}

    def work() -> None:
        try:
            session_ref.run_import(sink, on_progress=lambda p: job.update(progress=p), should_stop=stop.is_set)
        except Exception as exc:
            job["error"] = str(exc)

    session_ref = session()
    job["thread"] = threading.Thread(target=work, name="ledger-import", daemon=True)
    st.session_state["import_job"] = job
    job["thread"].start()


def render_preview() -> None:
    state = session().state
    summary = session().preview_summary()
    outcome = partition_rows(state.rows)

    cols = st.columns(4)
    cols[0].metric("Rows", summary.total_rows)
    cols[1].metric("Invalid", summary.invalid_rows)
    cols[2].metric("Expenses", f"{summary.expense_rows} / {summary.expense_total}")
    cols[3].metric("Income", f"{summary.income_rows} / {summary.income_total}")

    st.subheader("Ready to import")
    st.dataframe(rows_frame(outcome.valid), width="stretch", hide_index=True)

    if outcome.invalid:
        st.subheader("Needs attention")
        st.dataframe(rows_frame(outcome.invalid), width="stretch", hide_index=True)
        st.download_button(
            "Download invalid rows",
            data=invalid_rows_csv(state.table.headers, outcome.invalid).encode("utf-8"),
            file_name=export_filename(timestamp_token()),
            mime="text/csv",
        )
        if state.editor is None:
            pick = st.selectbox("Row to fix", options=[row.source_row_number for row in outcome.invalid])
            if st.button("Edit row"):
                session().open_correction(int(pick))
                st.rerun()
        else:
            render_correction_form()

    st.divider()
    settings = load_settings()
    target = st.radio("Send rows to", options=["API", "Dry run"], horizontal=True, index=0 if settings.api_url else 1)
    api_url: Optional[str] = None
    if target == "API":
        api_url = st.text_input("API base URL", value=settings.api_url or "")

    left, right = st.columns(2)
    if left.button("Back to mapping"):
        session().back_to_mapping()
        st.rerun()
    ready = state.editor is None and bool(outcome.valid) and (target == "Dry run" or bool(api_url))
    if right.button(f"Import {len(outcome.valid)} rows", type="primary", disabled=not ready):
        if target == "API":
            sink = RestSink(api_url, api_key=settings.api_key, timeout=settings.timeout)
        else:
            sink = RecordingSink()
        start_import(sink)
        st.rerun()


# ── Step 4: importing ─────────────────────────────────────────────────────────

def render_importing() -> None:
    job = st.session_state.get("import_job")
    progress = job["progress"] if job else None
    if progress is not None:
        st.progress(progress.fraction, text=f"Row {progress.row_number}: {progress.processed} of {progress.total}")
    else:
        st.progress(0.0, text="Starting...")
    if st.button("Stop after current row", disabled=job is None or job["stop"].is_set()):
        job["stop"].set()
    time.sleep(POLL_SECONDS)
    st.rerun()


# ── Step 5: summary ───────────────────────────────────────────────────────────

def render_summary() -> None:
    tally = session().state.tally
    if tally.cancelled:
        st.warning(f"Import stopped. {tally.not_attempted} rows were not sent.")
    elif tally.failed_on_submit:
        st.warning(f"{tally.failed_on_submit} rows could not be saved.")
    else:
        st.success("Import complete.")
    cols = st.columns(4)
    cols[0].metric("Expenses created", tally.expenses_created)
    cols[1].metric("Income created", tally.income_created)
    cols[2].metric("Failed", tally.failed_on_submit)
    cols[3].metric("Skipped invalid", tally.skipped_invalid)
    if tally.failures:
        st.dataframe(
            pd.DataFrame([{"Row": row, "Error": message} for row, message in tally.failures]),
            width="stretch",
            hide_index=True,
        )
    if st.button("Import another file", type="primary"):
        reset_wizard()
        st.rerun()


def main() -> None:
    st.set_page_config(page_title="ledger-import", layout="wide")
    ensure_state()

    st.title("ledger-import")
    stage = session().stage
    st.caption("  >  ".join(f"**{label}**" if step is stage else label for step, label in STEP_LABELS.items()))

    message = st.session_state.get("flash")
    if message:
        st.success(message)
        st.session_state["flash"] = None
    job = st.session_state.get("import_job")
    if job and not job["thread"].is_alive() and job.get("error"):
        st.error(f"Import failed: {job['error']}")
        st.session_state["import_job"] = None
        job = None

    try:
        if job and job["thread"].is_alive():
            render_importing()
        elif stage is Stage.UPLOAD:
            render_upload()
        elif stage is Stage.MAPPING:
            render_mapping()
        elif stage is Stage.PREVIEW:
            render_preview()
        elif stage is Stage.IMPORTING:
            render_importing()
        else:
            render_summary()
    except IllegalTransitionError as exc:
        st.error(str(exc))

    if stage not in (Stage.UPLOAD, Stage.SUMMARY) and st.sidebar.button("Reset"):
        reset_wizard()
        st.rerun()


if __name__ == "__main__":
    main()
