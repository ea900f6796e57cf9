"""
Row classification and normalisation.

For each data row: validate date/amount, decide expense vs income, then
canonicalise category and payment method into closed vocabularies and
build the draft record that a sink will persist.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from ledger_import.errors import RowValidationError
from ledger_import.fields import (
    CATEGORY,
    CONTACT,
    DESCRIPTION,
    FIELD_KEYS,
    PAYMENT_METHOD,
    TIP,
    TRANSACTION_TYPE,
)
from ledger_import.models import (
    CanonicalRecord,
    Cell,
    ClassifiedRow,
    ColumnMapping,
    ExpenseDraft,
    IncomeDraft,
    ParsedTable,
    Tag,
)
from ledger_import.validator import parse_amount, validate_values

DESCRIPTION_LIMIT = 50
OTHER = "other"

# ── Transaction-type keywords ─────────────────────────────────────────────────
EXPENSE_KEYWORDS = (
    "expense", "expenses", "debit", "out", "outflow", "purchase", "cost",
    "withdrawal", "spend", "spent", "fee", "charge",
)
INCOME_KEYWORDS = (
    "income", "revenue", "credit", "in", "inflow", "sale", "sales", "deposit",
    "receipt", "received", "earning", "earnings",
)
# Sign words only count as the whole value.
EXPENSE_EXACT = {"e", "dr", "-"}
INCOME_EXACT = {"i", "cr", "+"}

# ── Closed vocabularies (rules are checked in order) ──────────────────────────
EXPENSE_CATEGORY_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("booth-fees", ("booth", "stall", "table fee", "vendor fee", "market fee", "space rental", "pitch fee")),
    ("supplies", ("supplies", "supply", "office")),
    ("materials", ("material", "fabric", "yarn", "wood", "clay", "ingredient", "beads")),
    ("equipment", ("equipment", "tool", "machine", "tent", "canopy", "display", "hardware")),
    ("travel", ("travel", "gas", "fuel", "mileage", "parking", "hotel", "lodging", "toll", "airfare", "flight", "uber", "lyft")),
    ("marketing", ("marketing", "advertis", "promo", "flyer", "banner", "signage", "social media", "business card")),
    ("packaging", ("packag", "bag", "box", "wrap", "label", "tissue", "mailer")),
    ("utilities", ("utilit", "electric", "water", "internet", "phone", "wifi", "power")),
    ("insurance", ("insurance", "liability", "policy")),
)
EXPENSE_CATEGORIES = tuple(name for name, _ in EXPENSE_CATEGORY_RULES) + (OTHER,)

PAYMENT_METHOD_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("venmo", ("venmo",)),
    ("bank-transfer", ("bank", "transfer", "wire", "ach", "zelle", "direct deposit")),
    ("debit-card", ("debit",)),
    ("credit-card", ("credit", "visa", "mastercard", "master card", "amex", "american express", "discover", "card")),
    ("check", ("check", "cheque", "chq")),
    ("cash", ("cash",)),
)
PAYMENT_METHOD_EXACT = {"cc": "credit-card", "dc": "debit-card", "ck": "check", "eft": "bank-transfer"}
PAYMENT_METHODS = tuple(name for name, _ in PAYMENT_METHOD_RULES) + (OTHER,)


def _clean(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return " ".join(str(value).split())


def _starts_word(text: str, keyword: str) -> bool:
    # "fee" matches "Booth fee" but not "Coffee"; stems like "advertis" still match.
    return re.search(r"\b" + re.escape(keyword), text) is not None


def _names(text: str, keyword: str) -> bool:
    return re.search(r"\b" + re.escape(keyword) + r"s?\b", text) is not None


def _lookup(text: str, rules: tuple[tuple[str, tuple[str, ...]], ...], vocabulary: tuple[str, ...]) -> Optional[str]:
    lowered = text.lower()
    if lowered in vocabulary:
        return lowered
    for name, keywords in rules:
        if any(_starts_word(lowered, keyword) for keyword in keywords):
            return name
    return None


def normalize_expense_category(value: Any) -> str:
    text = _clean(value).replace("_", "-")
    if not text:
        return OTHER
    return _lookup(text, EXPENSE_CATEGORY_RULES, EXPENSE_CATEGORIES) or OTHER


def normalize_income_category(value: Any) -> str:
    # Income categories are free text; only empty values get a default.
    return _clean(value) or OTHER


def normalize_payment_method(value: Any) -> str:
    text = _clean(value).replace("_", "-")
    if not text:
        return OTHER
    exact = PAYMENT_METHOD_EXACT.get(text.lower())
    if exact:
        return exact
    return _lookup(text, PAYMENT_METHOD_RULES, PAYMENT_METHODS) or OTHER


def tag_from_type(value: Any) -> Optional[Tag]:
    text = _clean(value).lower()
    if not text:
        return None
    if text in EXPENSE_EXACT or any(_names(text, kw) for kw in EXPENSE_KEYWORDS):
        return Tag.EXPENSE
    if text in INCOME_EXACT or any(_names(text, kw) for kw in INCOME_KEYWORDS):
        return Tag.INCOME
    return None


def infer_tag(type_value: Any, amount: Decimal) -> Tag:
    explicit = tag_from_type(type_value)
    if explicit is not None:
        return explicit
    return Tag.EXPENSE if amount < 0 else Tag.INCOME


def truncate_description(value: Any) -> str:
    return _clean(value)[:DESCRIPTION_LIMIT]


def build_draft(values: Mapping[str, Any], tag: Tag, parsed: tuple[date, Decimal]) -> CanonicalRecord:
    """Build the record for an already-validated row from its (date, amount)."""
    row_date, amount = parsed
    contact = _clean(values.get(CONTACT))
    description = truncate_description(values.get(DESCRIPTION))
    payment_method = normalize_payment_method(values.get(PAYMENT_METHOD))

    if tag is Tag.EXPENSE:
        return ExpenseDraft(
            date=row_date,
            amount=abs(amount),
            category=normalize_expense_category(values.get(CATEGORY)),
            vendor=contact,
            description=description,
            payment_method=payment_method,
        )

    tip = parse_amount(values.get(TIP))
    return IncomeDraft(
        date=row_date,
        amount=abs(amount),
        category=normalize_income_category(values.get(CATEGORY)),
        customer=contact,
        description=description,
        payment_method=payment_method,
        tip=abs(tip) if tip is not None else Decimal("0"),
    )


def classify_values(
    values: Mapping[str, Any],
    *,
    row_number: int,
    raw: Sequence[Cell] = (),
    tag: Optional[Tag] = None,
) -> ClassifiedRow:
    """
    Classify one row's mapped values. When tag is given (a human correction)
    it overrides the transaction-type and sign rules.
    """
    try:
        parsed = validate_values(values)
    except RowValidationError as exc:
        return ClassifiedRow(
            source_row_number=row_number,
            tag=tag or Tag.INCOME,
            errors=tuple(exc.errors),
            draft=None,
            raw=tuple(raw),
        )

    chosen = tag or infer_tag(values.get(TRANSACTION_TYPE), parsed[1])
    return ClassifiedRow(
        source_row_number=row_number,
        tag=chosen,
        errors=(),
        draft=build_draft(values, chosen, parsed),
        raw=tuple(raw),
    )


def extract_values(table: ParsedTable, row: Sequence[Cell], mapping: ColumnMapping) -> dict[str, Cell]:
    return {key: table.cell(tuple(row), mapping.header_for(key)) for key in FIELD_KEYS}


def classify_table(
    table: ParsedTable,
    mapping: ColumnMapping,
    corrections: Optional[Mapping[int, tuple[Mapping[str, Any], Tag]]] = None,
) -> list[ClassifiedRow]:
    """
    Classify every data row. corrections maps a source row number to the
    (values, tag) a human saved for it; those rows are rebuilt from the
    saved values instead of the file.
    """
    corrections = corrections or {}
    classified = []
    for row_number, row in zip(table.row_numbers, table.rows):
        if row_number in corrections:
            values, tag = corrections[row_number]
            classified.append(classify_values(values, row_number=row_number, raw=row, tag=tag))
        else:
            classified.append(classify_values(extract_values(table, row, mapping), row_number=row_number, raw=row))
    return classified
