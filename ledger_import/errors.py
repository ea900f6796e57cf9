"""Error taxonomy for the import pipeline."""

from __future__ import annotations


class LedgerImportError(Exception):
    """Base class for every error raised by ledger_import."""


# ── File level: fatal to the current upload ─────────────────────────────────

class EmptyFileError(LedgerImportError):
    pass


class UnsupportedFormatError(LedgerImportError):
    pass


# ── Mapping level: blocks mapping -> preview ────────────────────────────────

class MissingRequiredMappingError(LedgerImportError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            "Map a column for each required field before continuing: " + ", ".join(self.missing)
        )


# ── Row level: always contained to the row ──────────────────────────────────

class RowValidationError(LedgerImportError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class RowSubmitError(LedgerImportError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IllegalTransitionError(LedgerImportError):
    def __init__(self, operation: str, stage: str) -> None:
        self.operation = operation
        self.stage = stage
        super().__init__(f"Cannot {operation} while the import is in the '{stage}' step")
