import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from ledger_import.classifier import classify_values
from ledger_import.export import export_filename, invalid_rows_csv, write_invalid_rows
from ledger_import.models import ClassifiedRow, Tag
from ledger_import.validator import AMOUNT_ERROR, DATE_ERROR


class InvalidRowExportTests(unittest.TestCase):
    headers = ("Date", "Amount", "Notes")

    def test_every_field_is_quoted_and_errors_are_joined(self):
        rows = [
            ClassifiedRow(2, Tag.INCOME, errors=(DATE_ERROR, AMOUNT_ERROR), raw=(None, "abc", 'say "hi"')),
        ]
        self.assertEqual(
            invalid_rows_csv(self.headers, rows),
            '"Date","Amount","Notes","Error"\n'
            '"","abc","say ""hi""","Date is missing or invalid; Amount is missing or invalid"\n',
        )

    def test_short_rows_are_padded_and_dates_written_as_iso(self):
        rows = [ClassifiedRow(3, Tag.INCOME, errors=(AMOUNT_ERROR,), raw=(datetime(2025, 3, 1, 9, 30),))]
        lines = invalid_rows_csv(self.headers, rows).splitlines()
        self.assertEqual(lines[1], '"2025-03-01T09:30:00","","","Amount is missing or invalid"')

    def test_valid_rows_are_left_out(self):
        invalid = ClassifiedRow(2, Tag.INCOME, errors=(DATE_ERROR,), raw=("", "1", ""))
        valid = classify_values({"date": "2025-03-01", "amount": "5"}, row_number=3, raw=("2025-03-01", "5", ""))
        lines = invalid_rows_csv(self.headers, [invalid, valid]).splitlines()
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[1].startswith('"","1"'))

    def test_headers_only_when_nothing_is_invalid(self):
        self.assertEqual(invalid_rows_csv(self.headers, []), '"Date","Amount","Notes","Error"\n')

    def test_filename_carries_the_product_prefix(self):
        self.assertEqual(export_filename("20260301T010203Z"), "ledger-import-errors-20260301T010203Z.csv")

    def test_write_creates_parent_directories(self):
        rows = [ClassifiedRow(2, Tag.INCOME, errors=(DATE_ERROR,), raw=("", "1", ""))]
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_invalid_rows(Path(tmpdir) / "nested" / "errors.csv", self.headers, rows)
            self.assertTrue(path.exists())
            self.assertTrue(path.read_text(encoding="utf-8").startswith('"Date"'))


if __name__ == "__main__":
    unittest.main()
