from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from ledger_import import __version__ as TOOL_VERSION
from ledger_import.config import Settings, load_settings, timestamp_token
from ledger_import.contracts import build_contract, build_run_summary
from ledger_import.detector import SKIP
from ledger_import.errors import (
    EmptyFileError,
    IllegalTransitionError,
    MissingRequiredMappingError,
    UnsupportedFormatError,
)
from ledger_import.export import export_filename, write_invalid_rows
from ledger_import.fields import FIELD_DICTIONARY, FIELD_KEYS
from ledger_import.models import ImportProgress, ImportTally
from ledger_import.pipeline import ImportSession, PreviewState, summarize_rows
from ledger_import.sinks import JsonlSink, RecordingSink, RecordSink, RestSink
from ledger_import.validator import partition_rows


EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_READ_FAILED = 2
EXIT_MAPPING_INCOMPLETE = 3
EXIT_INVALID_ROWS = 4
EXIT_SUBMIT_FAILED = 5
EXIT_CANCELLED = 6

MAX_HUMAN_ERRORS = 20


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class LedgerImportArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def is_quiet(args: argparse.Namespace) -> bool:
    return bool(getattr(args, "quiet", False) or getattr(args, "json", False))


def parse_map_overrides(raw_overrides: list[str] | None) -> list[tuple[str, str]]:
    overrides = []
    for raw in raw_overrides or []:
        key, sep, header = raw.partition("=")
        key = key.strip()
        if not sep or not key:
            raise CliError(f"--map expects field=Header, got '{raw}'", EXIT_COMMAND_ERROR)
        if key not in FIELD_KEYS:
            raise CliError(
                f"Unknown field '{key}' in --map. Expected one of: {', '.join(FIELD_KEYS)}",
                EXIT_COMMAND_ERROR,
            )
        header = header.strip()
        overrides.append((key, SKIP if header.lower() in {"", "skip"} else header))
    return overrides


def prepare_session(args: argparse.Namespace) -> ImportSession:
    """Load the file, apply --map overrides and move to the preview step."""
    input_path = Path(args.input)
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)

    session = ImportSession()
    try:
        session.load(input_path)
    except (EmptyFileError, UnsupportedFormatError, ValueError, ImportError, UnicodeDecodeError) as exc:
        raise CliError(str(exc), EXIT_READ_FAILED) from exc

    for key, choice in parse_map_overrides(args.map):
        try:
            session.choose(key, choice)
        except ValueError as exc:
            raise CliError(f"--map {key}: {exc}", EXIT_COMMAND_ERROR) from exc

    try:
        session.advance_to_preview()
    except MissingRequiredMappingError as exc:
        raise CliError(str(exc), EXIT_MAPPING_INCOMPLETE) from exc
    return session


def resolve_errors_path(raw: str | None, settings: Settings) -> Path | None:
    if not raw:
        return None
    path = Path(raw)
    if path.is_dir():
        return path / export_filename(timestamp_token(settings))
    return path


def maybe_write_errors(session_state: PreviewState, errors_path: Path | None, *, quiet: bool) -> Path | None:
    if errors_path is None:
        return None
    outcome = partition_rows(session_state.rows)
    if not outcome.invalid:
        emit_human("No invalid rows; error export skipped.", quiet=quiet)
        return None
    write_invalid_rows(errors_path, session_state.table.headers, outcome.invalid)
    emit_human(f"Invalid rows written: {errors_path}", quiet=quiet)
    return errors_path


def preview_payload(state: PreviewState) -> dict[str, Any]:
    table = state.table
    outcome = partition_rows(state.rows)
    return {
        "contract": build_contract("ledger_import.preview"),
        "file": table.source_name,
        "detected_format": table.detected_format,
        "encoding": table.encoding,
        "delimiter": table.delimiter,
        "sheet_name": table.sheet_name,
        "headers": list(table.headers),
        "mapping": state.mapping.as_dict(),
        "summary": summarize_rows(state.rows).as_dict(),
        "records": [
            {"row": row.source_row_number, "type": row.tag.value, **row.draft.as_payload()}
            for row in outcome.valid
        ],
        "invalid_rows": [
            {"row": row.source_row_number, "errors": list(row.errors)} for row in outcome.invalid
        ],
        "warnings": list(table.warnings),
    }


def render_preview_text(state: PreviewState) -> str:
    table = state.table
    summary = summarize_rows(state.rows)
    lines = [
        "ledger-import preview",
        f"File: {table.source_name}",
        f"Format: {table.detected_format}",
    ]
    if table.encoding:
        lines.append(f"Encoding: {table.encoding}")
    if table.sheet_name:
        lines.append(f"Sheet: {table.sheet_name}")
    lines.append("Mapping:")
    for spec in FIELD_DICTIONARY:
        header = state.mapping.header_for(spec.key)
        lines.append(f"  {spec.label}: {header if header is not None else '[skipped]'}")
    lines.extend(
        [
            f"Rows: {summary.total_rows} ({summary.valid_rows} valid, {summary.invalid_rows} invalid)",
            f"Expenses: {summary.expense_rows} totalling {summary.expense_total}",
            f"Income: {summary.income_rows} totalling {summary.income_total} (tips {summary.tip_total})",
        ]
    )
    invalid = partition_rows(state.rows).invalid
    for row in invalid[:MAX_HUMAN_ERRORS]:
        lines.append(f"  Row {row.source_row_number}: {'; '.join(row.errors)}")
    if len(invalid) > MAX_HUMAN_ERRORS:
        lines.append(f"  ... and {len(invalid) - MAX_HUMAN_ERRORS} more")
    for warning in table.warnings:
        lines.append(f"Warning: {warning}")
    return "\n".join(lines)


def render_tally_text(tally: ImportTally) -> str:
    lines = [
        "ledger-import run",
        f"Expenses created: {tally.expenses_created}",
        f"Income created: {tally.income_created}",
        f"Failed on submit: {tally.failed_on_submit}",
        f"Skipped invalid: {tally.skipped_invalid}",
    ]
    if tally.cancelled:
        lines.append(f"Cancelled: {tally.not_attempted} rows not attempted")
    for row_number, message in tally.failures[:MAX_HUMAN_ERRORS]:
        lines.append(f"  Row {row_number}: {message}")
    return "\n".join(lines)


def choose_sink(args: argparse.Namespace, settings: Settings) -> tuple[RecordSink, str]:
    if args.dry_run:
        return RecordingSink(), "dry-run"
    if args.jsonl:
        return JsonlSink(Path(args.jsonl)), f"jsonl:{args.jsonl}"
    api_url = args.api_url or settings.api_url
    if not api_url:
        raise CliError(
            "No destination. Pass --api-url (or set LEDGER_IMPORT_API_URL), --jsonl PATH or --dry-run.",
            EXIT_COMMAND_ERROR,
        )
    timeout = args.timeout if args.timeout is not None else settings.timeout
    return RestSink(api_url, api_key=args.api_key or settings.api_key, timeout=timeout), api_url


def build_parser() -> argparse.ArgumentParser:
    parser = LedgerImportArgumentParser(prog="ledger-import", description="Import expense and income rows from CSV or spreadsheet files.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview = subparsers.add_parser("preview", help="Map columns and classify rows without importing.")
    preview.add_argument("input", help="Input file path")
    preview.add_argument("--map", action="append", metavar="FIELD=HEADER", help="Override one column mapping (HEADER may be 'skip')")
    preview.add_argument("--errors-out", dest="errors_out", help="Write invalid rows as CSV to this file or directory")
    preview.add_argument("--fail-on-invalid", action="store_true", help="Return exit code 4 when any row is invalid")
    preview.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    preview.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    preview.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    run = subparsers.add_parser("run", help="Classify rows and import the valid ones.")
    run.add_argument("input", help="Input file path")
    run.add_argument("--map", action="append", metavar="FIELD=HEADER", help="Override one column mapping (HEADER may be 'skip')")
    run.add_argument("--api-url", dest="api_url", help="Base URL of the ledger API")
    run.add_argument("--api-key", dest="api_key", help="API key sent with each request")
    run.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    run.add_argument("--jsonl", help="Append records to a JSON-lines file instead of calling the API")
    run.add_argument("--dry-run", action="store_true", help="Classify and count without sending anything")
    run.add_argument("--errors-out", dest="errors_out", help="Write invalid rows as CSV to this file or directory")
    run.add_argument("--fail-on-invalid", action="store_true", help="Return exit code 4 when any row is invalid")
    run.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    run.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    run.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    fields = subparsers.add_parser("fields", help="List the importable fields and their header patterns.")
    fields.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("config", help="Print the effective settings.")
    subparsers.add_parser("version", help="Print version")
    return parser


def run_preview(args: argparse.Namespace) -> int:
    configure_logging(args.verbose)
    try:
        settings = load_settings()
    except ValueError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
    quiet = is_quiet(args)
    session = prepare_session(args)
    state = session.state
    errors_path = maybe_write_errors(state, resolve_errors_path(args.errors_out, settings), quiet=quiet)

    if args.json:
        payload = preview_payload(state)
        payload["errors_file"] = str(errors_path) if errors_path else None
        print(json_dumps(payload))
    else:
        emit_human(render_preview_text(state), quiet=args.quiet)

    if args.fail_on_invalid and partition_rows(state.rows).invalid:
        return EXIT_INVALID_ROWS
    return EXIT_SUCCESS


def run_run(args: argparse.Namespace) -> int:
    configure_logging(args.verbose)
    try:
        settings = load_settings()
    except ValueError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
    quiet = is_quiet(args)
    sink, sink_label = choose_sink(args, settings)
    session = prepare_session(args)
    state = session.state
    errors_path = maybe_write_errors(state, resolve_errors_path(args.errors_out, settings), quiet=quiet)

    interrupted: list[bool] = []

    def request_stop(signum, frame) -> None:
        emit_human("Stopping after the current row...", quiet=quiet)
        interrupted.append(True)

    def report(progress: ImportProgress) -> None:
        if args.verbose and not quiet:
            eprint(f"[{progress.processed}/{progress.total}] row {progress.row_number}: {progress.outcome}")

    previous_handler = signal.signal(signal.SIGINT, request_stop)
    try:
        tally = session.run_import(sink, on_progress=report, should_stop=lambda: bool(interrupted))
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if tally.cancelled:
        status, code = "cancelled", EXIT_CANCELLED
    elif tally.failed_on_submit:
        status, code = "partial", EXIT_SUBMIT_FAILED
    elif args.fail_on_invalid and tally.skipped_invalid:
        status, code = "invalid_rows", EXIT_INVALID_ROWS
    else:
        status, code = "ok", EXIT_SUCCESS

    if args.json:
        payload = {
            "contract": build_contract("ledger_import.summary"),
            "run_summary": build_run_summary(
                command="run",
                input_path=Path(args.input),
                status=status,
                sink=sink_label,
                errors_path=errors_path,
                metrics=tally.as_dict(),
                warnings=list(state.table.warnings),
            ),
            "preview": summarize_rows(state.rows).as_dict(),
        }
        print(json_dumps(payload))
    else:
        emit_human(render_tally_text(tally), quiet=args.quiet)
    return code


def run_fields(args: argparse.Namespace) -> int:
    payload = [
        {
            "key": spec.key,
            "label": spec.label,
            "required": spec.required,
            "patterns": list(spec.patterns),
            "exact": list(spec.exact),
        }
        for spec in FIELD_DICTIONARY
    ]
    if args.json:
        print(json_dumps(payload))
        return EXIT_SUCCESS
    for item in payload:
        marker = "*" if item["required"] else " "
        # "=word" marks a whole-header match
        patterns = item["patterns"] + [f"={word}" for word in item["exact"]]
        print(f"{marker} {item['key']:<16} {item['label']:<18} {', '.join(patterns)}")
    return EXIT_SUCCESS


def run_config() -> int:
    try:
        settings = load_settings()
    except ValueError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
    print(json_dumps(settings.as_dict()))
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "preview":
            return run_preview(args)
        if args.command == "run":
            return run_run(args)
        if args.command == "fields":
            return run_fields(args)
        if args.command == "config":
            return run_config()
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code
    except IllegalTransitionError as exc:
        eprint(str(exc))
        return EXIT_COMMAND_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
