"""
Row validation: the only hard requirements are a parseable date and a
parseable amount. Everything else about a row is optional.
"""

from __future__ import annotations

import re
import warnings
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Sequence

import pandas as pd

from ledger_import.errors import RowValidationError
from ledger_import.fields import AMOUNT, DATE
from ledger_import.models import ClassifiedRow

DATE_ERROR = "Date is missing or invalid"
AMOUNT_ERROR = "Amount is missing or invalid"

# Month-first forms come before day-first ones: "03/04/2025" reads as March 4.
DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%Y%m%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d/%m/%Y",
    "%d/%m/%y",
    "%m-%d-%Y",
    "%m-%d-%y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%b %d %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
)

EXCEL_EPOCH = datetime(1899, 12, 30)
EXCEL_SERIAL_RANGE = (25_000, 60_000)

SENTINEL_NULLS = {"", "na", "n/a", "none", "null", "nil", "nan", "-", "--"}
CURRENCY_SYMBOLS = "$€£¥₹"
CURRENCY_CODE_RE = re.compile(r"^(USD|CAD|EUR|GBP|AUD|NZD|MXN|INR|JPY)|(USD|CAD|EUR|GBP|AUD|NZD|MXN|INR|JPY)$", re.IGNORECASE)
ORDINAL_RE = re.compile(r"(\d+)(st|nd|rd|th)\b", re.IGNORECASE)
NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_date(value: Any) -> Optional[date]:
    """Return a date for a native date, an Excel serial number, or date-like text."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        number = float(value)
        if number != number or not number.is_integer():
            return None
        low, high = EXCEL_SERIAL_RANGE
        if low <= number <= high:
            return (EXCEL_EPOCH + timedelta(days=int(number))).date()
        return parse_date(str(int(number))) if 19000101 <= number <= 21001231 else None

    text = _text(value)
    if text.lower() in SENTINEL_NULLS:
        return None
    text = ORDINAL_RE.sub(r"\1", " ".join(text.split()))

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    # Last resort for named months and other free-form text; bare numbers are not dates.
    if not re.search(r"[A-Za-z]", text) and len(re.findall(r"\d+", text)) < 3:
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        parsed = pd.to_datetime(text, errors="coerce")
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.to_pydatetime().date()


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a money value. Currency symbols and codes, thousands separators and
    whitespace are ignored; "(12.50)" means -12.50.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return Decimal(str(value))
    if isinstance(value, (date, datetime)):
        return None

    text = _text(value)
    if text.lower() in SENTINEL_NULLS:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = "".join(text.split())
    for symbol in CURRENCY_SYMBOLS:
        text = text.replace(symbol, "")
    text = CURRENCY_CODE_RE.sub("", text).replace(",", "")

    if not NUMBER_RE.fullmatch(text):
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    return -abs(amount) if negative else amount


def validate_values(values: Mapping[str, Any]) -> tuple[date, Decimal]:
    """Return (date, signed amount) or raise RowValidationError listing every failure."""
    parsed_date = parse_date(values.get(DATE))
    parsed_amount = parse_amount(values.get(AMOUNT))

    errors = []
    if parsed_date is None:
        errors.append(DATE_ERROR)
    if parsed_amount is None:
        errors.append(AMOUNT_ERROR)
    if errors:
        raise RowValidationError(errors)
    return parsed_date, parsed_amount


@dataclass(frozen=True)
class ValidationOutcome:
    valid: tuple[ClassifiedRow, ...]
    invalid: tuple[ClassifiedRow, ...]

    @property
    def total(self) -> int:
        return len(self.valid) + len(self.invalid)


def partition_rows(rows: Sequence[ClassifiedRow]) -> ValidationOutcome:
    valid = tuple(row for row in rows if row.is_valid)
    invalid = tuple(row for row in rows if not row.is_valid)
    return ValidationOutcome(valid=valid, invalid=invalid)
