#!/usr/bin/env python3
"""
Generates sample-data/market_export.csv and sample-data/market_export.xlsx:
a market vendor's mixed sales/expense export with deliberate problems.

Run from the repo root:
    python sample-data/generate_samples.py

Problems baked in:
  - Amounts with currency symbols, parentheses and thousands separators
  - A row with no transaction type (tag comes from the negative amount)
  - Missing date on row 4, unparseable amount on row 7
  - A blank line (row 5) that the reader drops
  - Quotes and commas inside a notes cell
"""

from __future__ import annotations

import csv
from datetime import date
from pathlib import Path

import openpyxl

OUTPUT_DIR = Path(__file__).parent

HEADERS = ["Date", "Type", "Amount", "Category", "Customer / Vendor", "Payment", "Notes", "Tip"]

# Text cells exactly as a spreadsheet export would write them; None marks the blank line.
TEXT_ROWS = [
    ["2025-03-01", "Sale", "$120.00", "Jewelry", "Ana Ruiz", "Visa", "Saturday market", "5"],
    ["03/02/2025", "Expense", "(45.50)", "Booth fee", "City Market", "cash", "Stall rental March", ""],
    ["", "Sale", "30", "Prints", "Walk-in", "Cash", "Missing date", ""],
    None,
    ["2025-03-04", "", "-18.25", "Gas for truck", "Shell", "debit", "Fuel", ""],
    ["2025-03-05", "Sale", "abc", "Cards", "Jo", "venmo", "Bad amount", ""],
    ["March 6, 2025", "Deposit", "1,250.00", "Wholesale", "Gift Shop Co", "bank transfer", 'Order #12, "rush"', "x"],
]

# Same rows with native cell types, as a workbook stores them.
WORKBOOK_ROWS = [
    [date(2025, 3, 1), "Sale", 120.0, "Jewelry", "Ana Ruiz", "Visa", "Saturday market", 5],
    [date(2025, 3, 2), "Expense", -45.5, "Booth fee", "City Market", "cash", "Stall rental March", None],
    [None, "Sale", 30, "Prints", "Walk-in", "Cash", "Missing date", None],
    None,
    [date(2025, 3, 4), None, -18.25, "Gas for truck", "Shell", "debit", "Fuel", None],
    [date(2025, 3, 5), "Sale", "abc", "Cards", "Jo", "venmo", "Bad amount", None],
    [date(2025, 3, 6), "Deposit", 1250.0, "Wholesale", "Gift Shop Co", "bank transfer", 'Order #12, "rush"', "x"],
]


def write_csv(path: Path) -> Path:
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADERS)
        for row in TEXT_ROWS:
            writer.writerow(row if row is not None else [])
    return path


def write_xlsx(path: Path) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Transactions"
    ws.append(HEADERS)
    for row in WORKBOOK_ROWS:
        ws.append(row if row is not None else [None] * len(HEADERS))
    wb.save(path)
    return path


def main() -> None:
    print(f"Written: {write_csv(OUTPUT_DIR / 'market_export.csv')}")
    print(f"Written: {write_xlsx(OUTPUT_DIR / 'market_export.xlsx')}")


if __name__ == "__main__":
    main()
