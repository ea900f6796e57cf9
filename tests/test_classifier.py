import unittest
from datetime import date
from decimal import Decimal

from ledger_import.classifier import (
    EXPENSE_CATEGORIES,
    PAYMENT_METHODS,
    classify_table,
    classify_values,
    normalize_expense_category,
    normalize_income_category,
    normalize_payment_method,
    tag_from_type,
)
from ledger_import.detector import detect_columns
from ledger_import.models import ExpenseDraft, IncomeDraft, ParsedTable, Tag
from ledger_import.validator import DATE_ERROR, partition_rows


def make_table(headers, *rows):
    return ParsedTable(
        headers=tuple(headers),
        rows=tuple(tuple(row) for row in rows),
        row_numbers=tuple(range(2, len(rows) + 2)),
        source_name="test.csv",
    )


def classify(headers, *rows):
    table = make_table(headers, *rows)
    return classify_table(table, detect_columns(table.headers))


class ScenarioTests(unittest.TestCase):
    def test_negative_amount_without_type_is_an_expense(self):
        [row] = classify(["Date", "Amount", "Vendor"], ["2025-01-10", "-45.00", "Office Depot"])
        self.assertEqual(row.tag, Tag.EXPENSE)
        self.assertIsInstance(row.draft, ExpenseDraft)
        self.assertEqual(row.draft.amount, Decimal("45.00"))
        self.assertEqual(row.draft.vendor, "Office Depot")
        self.assertEqual(row.draft.category, "other")
        self.assertEqual(row.draft.date, date(2025, 1, 10))
        self.assertEqual(row.source_row_number, 2)

    def test_sale_type_is_income(self):
        [row] = classify(["Date", "Amount", "Type"], ["2025-02-01", "120", "Sale"])
        self.assertEqual(row.tag, Tag.INCOME)
        self.assertIsInstance(row.draft, IncomeDraft)
        self.assertEqual(row.draft.amount, Decimal("120"))

    def test_empty_date_is_the_only_error(self):
        [row] = classify(["Date", "Amount"], ["", "10"])
        self.assertEqual(row.errors, (DATE_ERROR,))
        self.assertIsNone(row.draft)
        self.assertFalse(row.is_valid)

    def test_card_name_under_payment_type_keeps_the_amount_sign(self):
        [row] = classify(["Date", "Amount", "Payment Type"], ["2025-01-10", "-45.00", "Credit Card"])
        self.assertEqual(row.tag, Tag.EXPENSE)
        self.assertEqual(row.draft.payment_method, "credit-card")
        self.assertEqual(row.draft.amount, Decimal("45.00"))

    def test_gas_category_on_expense_is_travel(self):
        [row] = classify(["Date", "Amount", "Category"], ["2025-01-10", "-30", "Gas for truck"])
        self.assertEqual(row.draft.category, "travel")


class TagTests(unittest.TestCase):
    def test_expense_words(self):
        for text in ("Expense", "DEBIT", "Purchase", "cash out", "Withdrawal", "dr", "E", "-", "Booth fee"):
            with self.subTest(text=text):
                self.assertIs(tag_from_type(text), Tag.EXPENSE)

    def test_income_words(self):
        for text in ("Income", "credit", "Sale", "Deposit", "Cr", "i", "+", "Receipt"):
            with self.subTest(text=text):
                self.assertIs(tag_from_type(text), Tag.INCOME)

    def test_keywords_must_be_whole_words(self):
        self.assertIs(tag_from_type("Coffee sale"), Tag.INCOME)
        self.assertIs(tag_from_type("Fees"), Tag.EXPENSE)
        self.assertIsNone(tag_from_type("Invoice"))

    def test_short_sign_words_only_match_whole_values(self):
        self.assertIsNone(tag_from_type("Transfer"))
        self.assertIsNone(tag_from_type(""))

    def test_type_column_overrides_amount_sign(self):
        [row] = classify(["Date", "Amount", "Type"], ["2025-02-01", "-120", "Refund deposit"])
        self.assertEqual(row.tag, Tag.INCOME)
        self.assertEqual(row.draft.amount, Decimal("120"))

    def test_unmatched_type_falls_back_to_sign(self):
        rows = classify(
            ["Date", "Amount", "Type"],
            ["2025-02-01", "-5", "Transfer"],
            ["2025-02-02", "0", "Transfer"],
        )
        self.assertEqual([row.tag for row in rows], [Tag.EXPENSE, Tag.INCOME])

    def test_classification_is_deterministic(self):
        headers = ["Date", "Amount", "Type", "Category"]
        rows = [["2025-02-01", "-5", "", "Booth"], ["2025-02-02", "8", "sale", "Prints"], ["", "x", "", ""]]
        self.assertEqual(classify(headers, *rows), classify(headers, *rows))


class NormalizationTests(unittest.TestCase):
    def test_expense_categories(self):
        cases = {
            "Booth Fees": "booth-fees",
            "Table fee - Saturday": "booth-fees",
            "office supplies": "supplies",
            "Fabric": "materials",
            "Canopy tent": "equipment",
            "Parking": "travel",
            "Facebook advertising": "marketing",
            "Poly mailers": "packaging",
            "Phone bill": "utilities",
            "Liability insurance": "insurance",
            "Content marketing": "marketing",
            "Coffee for booth crew": "booth-fees",
            "Misc": "other",
            "": "other",
            None: "other",
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(normalize_expense_category(text), expected)

    def test_expense_categories_are_idempotent(self):
        for name in EXPENSE_CATEGORIES:
            with self.subTest(name=name):
                self.assertEqual(normalize_expense_category(name), name)
                self.assertEqual(normalize_expense_category(normalize_expense_category(name.upper())), name)

    def test_income_category_is_kept_verbatim(self):
        self.assertEqual(normalize_income_category("Wholesale orders"), "Wholesale orders")
        self.assertEqual(normalize_income_category("Booth"), "Booth")
        self.assertEqual(normalize_income_category(""), "other")

    def test_payment_methods(self):
        cases = {
            "Visa": "credit-card",
            "AMEX": "credit-card",
            "cc": "credit-card",
            "Debit card": "debit-card",
            "cash": "cash",
            "Venmo": "venmo",
            "Bank Transfer": "bank-transfer",
            "cheque": "check",
            "bitcoin": "other",
            "": "other",
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(normalize_payment_method(text), expected)

    def test_payment_methods_are_idempotent(self):
        for name in PAYMENT_METHODS:
            with self.subTest(name=name):
                self.assertEqual(normalize_payment_method(name), name)

    def test_description_is_truncated_to_fifty_characters(self):
        [row] = classify(["Date", "Amount", "Description"], ["2025-01-10", "5", "x" * 80])
        self.assertEqual(row.draft.description, "x" * 50)


class TipTests(unittest.TestCase):
    headers = ["Date", "Amount", "Tip"]

    def test_tip_is_parsed_like_amount(self):
        [row] = classify(self.headers, ["2025-01-10", "20", "$3.50"])
        self.assertEqual(row.draft.tip, Decimal("3.50"))

    def test_bad_tip_silently_defaults_to_zero(self):
        [row] = classify(self.headers, ["2025-01-10", "20", "lots"])
        self.assertTrue(row.is_valid)
        self.assertEqual(row.draft.tip, Decimal("0"))

    def test_unmapped_tip_is_zero(self):
        [row] = classify(["Date", "Amount"], ["2025-01-10", "20"])
        self.assertEqual(row.draft.tip, Decimal("0"))

    def test_income_payload_shape(self):
        [row] = classify(self.headers, ["2025-01-10", "20", "2"])
        payload = row.draft.as_payload()
        self.assertEqual(payload["income_date"], "2025-01-10")
        self.assertEqual(payload["tip"], 2.0)
        self.assertEqual(payload["market"], "")
        self.assertEqual(payload["attachments"], [])


class ClassifyValuesTests(unittest.TestCase):
    def test_forced_tag_wins_over_type_column(self):
        row = classify_values(
            {"date": "2025-01-01", "amount": "10", "transaction_type": "Sale", "category": "Booth"},
            row_number=5,
            tag=Tag.EXPENSE,
        )
        self.assertEqual(row.tag, Tag.EXPENSE)
        self.assertEqual(row.draft.category, "booth-fees")
        self.assertEqual(row.source_row_number, 5)

    def test_invalid_row_gets_income_placeholder_and_keeps_raw_cells(self):
        row = classify_values({"date": "", "amount": ""}, row_number=9, raw=("", ""))
        self.assertEqual(row.tag, Tag.INCOME)
        self.assertEqual(row.raw, ("", ""))
        self.assertEqual(len(row.errors), 2)

    def test_valid_and_invalid_always_add_up(self):
        rows = classify(
            ["Date", "Amount"],
            ["2025-01-10", "5"],
            ["bad", "5"],
            ["2025-01-12", ""],
            ["2025-01-13", "(4)"],
        )
        outcome = partition_rows(rows)
        self.assertEqual(len(outcome.valid) + len(outcome.invalid), 4)
        self.assertEqual([row.source_row_number for row in outcome.invalid], [3, 4])

    def test_saved_corrections_replace_file_values(self):
        table = make_table(["Date", "Amount"], ["", "5"], ["2025-01-11", "6"])
        corrections = {2: ({"date": "2025-01-10", "amount": "5"}, Tag.EXPENSE)}
        rows = classify_table(table, detect_columns(table.headers), corrections)
        self.assertTrue(rows[0].is_valid)
        self.assertEqual(rows[0].tag, Tag.EXPENSE)
        self.assertEqual(rows[0].source_row_number, 2)
        self.assertEqual(rows[1].tag, Tag.INCOME)


if __name__ == "__main__":
    unittest.main()
