"""Canonical import fields and the header patterns used to find them."""

from __future__ import annotations

from dataclasses import dataclass

DATE = "date"
AMOUNT = "amount"
TRANSACTION_TYPE = "transaction_type"
CATEGORY = "category"
CONTACT = "contact"
DESCRIPTION = "description"
PAYMENT_METHOD = "payment_method"
TIP = "tip"


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    required: bool
    patterns: tuple[str, ...]  # lower-cased, matched anywhere in the header
    exact: tuple[str, ...] = ()  # lower-cased, matched only as the whole header


FIELD_DICTIONARY: tuple[FieldSpec, ...] = (
    FieldSpec(DATE, "Date", True, ("date", "posted", "day", "when")),
    FieldSpec(
        AMOUNT,
        "Amount",
        True,
        ("amount", "total", "cost", "price", "value", "sum", "charge", "debit", "credit", "revenue", "income"),
    ),
    FieldSpec(
        TRANSACTION_TYPE,
        "Transaction Type",
        False,
        ("transaction type", "txn type", "entry type", "kind", "direction", "dr/cr", "debit/credit", "in/out"),
        exact=("type",),
    ),
    FieldSpec(
        CATEGORY,
        "Category",
        False,
        ("category", "class", "group", "account", "income", "expense", "tag"),
    ),
    FieldSpec(
        CONTACT,
        "Vendor / Customer",
        False,
        ("vendor", "customer", "payee", "payer", "merchant", "contact", "client", "supplier", "store", "name"),
    ),
    FieldSpec(
        DESCRIPTION,
        "Description",
        False,
        ("description", "memo", "notes", "note", "details", "detail", "comment", "narrative", "reference"),
    ),
    FieldSpec(
        PAYMENT_METHOD,
        "Payment Method",
        False,
        ("payment method", "payment type", "method", "tender", "paid with", "payment", "card"),
    ),
    FieldSpec(TIP, "Tip", False, ("tip", "tips", "gratuity")),
)

FIELDS_BY_KEY = {spec.key: spec for spec in FIELD_DICTIONARY}
FIELD_KEYS = tuple(spec.key for spec in FIELD_DICTIONARY)
REQUIRED_KEYS = tuple(spec.key for spec in FIELD_DICTIONARY if spec.required)

# Fields offered in the correction form; the expense/income toggle replaces transaction_type.
EDITABLE_KEYS = tuple(key for key in FIELD_KEYS if key != TRANSACTION_TYPE)


def get_field(key: str) -> FieldSpec:
    try:
        return FIELDS_BY_KEY[key]
    except KeyError:
        raise KeyError(f"Unknown field '{key}'. Expected one of: {', '.join(FIELD_KEYS)}") from None
