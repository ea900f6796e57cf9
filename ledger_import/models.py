"""Data model shared by every stage of the import pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Union

Cell = Union[str, int, float, date, datetime, None]


class Tag(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


@dataclass(frozen=True)
class ParsedTable:
    """
    Header row plus data rows of raw cells, exactly as read from the file.

    row_numbers[i] is the 1-based position of rows[i] in the source file
    (header row included), used for user-facing messages.
    """

    headers: tuple[str, ...]
    rows: tuple[tuple[Cell, ...], ...]
    row_numbers: tuple[int, ...]
    source_name: str = ""
    detected_format: str = ""
    encoding: Optional[str] = None
    delimiter: Optional[str] = None
    sheet_name: Optional[str] = None
    warnings: tuple[str, ...] = ()

    def header_index(self, header: str) -> Optional[int]:
        # Duplicate header names resolve to the left-most column.
        for index, name in enumerate(self.headers):
            if name == header:
                return index
        return None

    def cell(self, row: tuple[Cell, ...], header: Optional[str]) -> Cell:
        if header is None:
            return None
        index = self.header_index(header)
        if index is None or index >= len(row):
            return None
        return row[index]


@dataclass(frozen=True)
class ColumnMapping:
    """Canonical field key -> header name, or None when the field is unmapped."""

    assignments: Mapping[str, Optional[str]] = field(default_factory=dict)

    def header_for(self, key: str) -> Optional[str]:
        return self.assignments.get(key)

    def assign(self, key: str, header: Optional[str]) -> "ColumnMapping":
        updated = dict(self.assignments)
        updated[key] = header
        return ColumnMapping(updated)

    def mapped_keys(self) -> list[str]:
        return [key for key, header in self.assignments.items() if header is not None]

    def as_dict(self) -> dict[str, Optional[str]]:
        return dict(self.assignments)


@dataclass(frozen=True)
class ExpenseDraft:
    date: date
    amount: Decimal
    category: str
    vendor: str
    description: str
    payment_method: str
    attachments: tuple = ()

    tag = Tag.EXPENSE

    def as_payload(self) -> dict[str, Any]:
        return {
            "expense_date": self.date.isoformat(),
            "amount": float(self.amount),
            "category": self.category,
            "vendor": self.vendor,
            "description": self.description,
            "payment_method": self.payment_method,
            "attachments": list(self.attachments),
        }


@dataclass(frozen=True)
class IncomeDraft:
    date: date
    amount: Decimal
    category: str
    customer: str
    description: str
    payment_method: str
    tip: Decimal = Decimal("0")
    market: str = ""
    attachments: tuple = ()

    tag = Tag.INCOME

    def as_payload(self) -> dict[str, Any]:
        return {
            "income_date": self.date.isoformat(),
            "amount": float(self.amount),
            "category": self.category,
            "customer": self.customer,
            "market": self.market,
            "description": self.description,
            "payment_method": self.payment_method,
            "tip": float(self.tip),
            "attachments": list(self.attachments),
        }


CanonicalRecord = Union[ExpenseDraft, IncomeDraft]


@dataclass(frozen=True)
class ClassifiedRow:
    source_row_number: int
    tag: Tag
    errors: tuple[str, ...] = ()
    draft: Optional[CanonicalRecord] = None
    raw: tuple[Cell, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.draft is not None and not self.errors


@dataclass(frozen=True)
class ImportProgress:
    processed: int
    total: int
    row_number: Optional[int] = None
    outcome: Optional[str] = None

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return self.processed / self.total


@dataclass(frozen=True)
class ImportTally:
    expenses_created: int = 0
    income_created: int = 0
    skipped_invalid: int = 0
    failed_on_submit: int = 0
    attempted: int = 0
    not_attempted: int = 0
    cancelled: bool = False
    failures: tuple[tuple[int, str], ...] = ()

    @property
    def created(self) -> int:
        return self.expenses_created + self.income_created

    def as_dict(self) -> dict[str, Any]:
        return {
            "expenses_created": self.expenses_created,
            "income_created": self.income_created,
            "skipped_invalid": self.skipped_invalid,
            "failed_on_submit": self.failed_on_submit,
            "attempted": self.attempted,
            "not_attempted": self.not_attempted,
            "cancelled": self.cancelled,
            "failures": [{"row": row, "error": message} for row, message in self.failures],
        }
