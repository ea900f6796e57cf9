import unittest
from decimal import Decimal

from ledger_import.detector import SKIP
from ledger_import.errors import EmptyFileError, IllegalTransitionError, MissingRequiredMappingError
from ledger_import.models import Tag
from ledger_import.pipeline import ImportSession, Stage
from ledger_import.sinks import RecordingSink
from ledger_import.validator import AMOUNT_ERROR, partition_rows

CSV = (
    b"Date,Type,Amount,Category,Vendor,Notes\n"
    b"2025-03-01,Sale,$120.00,Jewelry,Ana,Saturday\n"
    b",Expense,(45.50),Booth fee,City Market,Missing date\n"
    b"2025-03-04,,-18.25,Gas for truck,Shell,Fuel\n"
)


def loaded_session() -> ImportSession:
    session = ImportSession()
    session.load(CSV, filename="market.csv")
    return session


def preview_session() -> ImportSession:
    session = loaded_session()
    session.advance_to_preview()
    return session


class SessionFlowTests(unittest.TestCase):
    def test_load_detects_columns_and_moves_to_mapping(self):
        session = loaded_session()
        self.assertIs(session.stage, Stage.MAPPING)
        self.assertEqual(session.state.mapping.header_for("amount"), "Amount")
        self.assertEqual(session.state.mapping.header_for("contact"), "Vendor")

    def test_preview_classifies_every_row(self):
        session = preview_session()
        self.assertIs(session.stage, Stage.PREVIEW)
        outcome = partition_rows(session.state.rows)
        self.assertEqual(len(outcome.valid), 2)
        self.assertEqual([row.source_row_number for row in outcome.invalid], [3])

    def test_preview_summary_totals(self):
        summary = preview_session().preview_summary()
        self.assertEqual(summary.total_rows, 3)
        self.assertEqual(summary.invalid_rows, 1)
        self.assertEqual(summary.income_rows, 1)
        self.assertEqual(summary.income_total, Decimal("120.00"))
        self.assertEqual(summary.expense_rows, 1)
        self.assertEqual(summary.expense_total, Decimal("18.25"))
        self.assertEqual(summary.as_dict()["expense_total"], "18.25")

    def test_missing_required_mapping_blocks_preview(self):
        session = loaded_session()
        session.choose("date", None)
        with self.assertRaises(MissingRequiredMappingError) as ctx:
            session.advance_to_preview()
        self.assertEqual(ctx.exception.missing, ["Date"])
        self.assertIs(session.stage, Stage.MAPPING)

    def test_failed_load_stays_on_upload(self):
        session = ImportSession()
        with self.assertRaises(EmptyFileError):
            session.load(b"Date,Amount\n", filename="empty.csv")
        self.assertIs(session.stage, Stage.UPLOAD)

    def test_set_mapping_replaces_the_whole_mapping(self):
        session = loaded_session()
        mapping = session.state.mapping.assign("contact", None).assign("description", "Vendor")
        session.set_mapping(mapping)
        self.assertEqual(session.state.mapping, mapping)
        with self.assertRaises(ValueError):
            session.set_mapping(mapping.assign("tip", "Gratuity"))

    def test_skip_in_a_replacement_mapping_still_blocks_preview(self):
        session = loaded_session()
        stored = session.set_mapping(session.state.mapping.assign("date", SKIP))
        self.assertIsNone(stored.header_for("date"))
        with self.assertRaises(MissingRequiredMappingError) as ctx:
            session.advance_to_preview()
        self.assertEqual(ctx.exception.missing, ["Date"])

    def test_back_to_mapping_and_forward_again(self):
        session = preview_session()
        session.back_to_mapping()
        self.assertIs(session.stage, Stage.MAPPING)
        session.choose("description", "Category")
        state = session.advance_to_preview()
        first = partition_rows(state.rows).valid[0]
        self.assertEqual(first.draft.description, "Jewelry")

    def test_import_runs_to_summary(self):
        session = preview_session()
        sink = RecordingSink()
        stages = []

        tally = session.run_import(sink, on_progress=lambda progress: stages.append(session.stage))

        self.assertIs(session.stage, Stage.SUMMARY)
        self.assertEqual(stages, [Stage.IMPORTING, Stage.IMPORTING])
        self.assertEqual(tally.expenses_created, 1)
        self.assertEqual(tally.income_created, 1)
        self.assertEqual(tally.skipped_invalid, 1)
        self.assertIs(session.state.tally, tally)
        self.assertEqual(session.preview_summary().total_rows, 3)

    def test_reset_from_any_stage(self):
        session = preview_session()
        session.open_correction(3)
        session.reset()
        self.assertIs(session.stage, Stage.UPLOAD)
        self.assertEqual(session.corrections, {})
        session.load(CSV, filename="market.csv")
        self.assertIs(session.stage, Stage.MAPPING)


class CorrectionFlowTests(unittest.TestCase):
    def test_saving_a_fix_moves_the_row_to_valid(self):
        session = preview_session()
        editor = session.open_correction(3)
        self.assertEqual(editor.values["amount"], "(45.50)")

        row = session.save_correction({"date": "2025-03-02"}, Tag.EXPENSE)

        self.assertTrue(row.is_valid)
        self.assertIsNone(session.state.editor)
        outcome = partition_rows(session.state.rows)
        self.assertEqual(outcome.invalid, ())
        self.assertEqual([r.source_row_number for r in session.state.rows], [2, 3, 4])
        self.assertEqual(session.state.rows[1].draft.category, "booth-fees")

    def test_failed_save_keeps_the_editor_open_with_new_errors(self):
        session = preview_session()
        session.open_correction(3)

        row = session.save_correction({"date": "2025-03-02", "amount": "lots"}, Tag.EXPENSE)

        self.assertFalse(row.is_valid)
        editor = session.state.editor
        self.assertIsNotNone(editor)
        self.assertEqual(editor.errors, (AMOUNT_ERROR,))
        self.assertEqual(editor.values["amount"], "lots")
        self.assertEqual(editor.tag, Tag.EXPENSE)

    def test_saved_fix_survives_a_mapping_change(self):
        session = preview_session()
        session.open_correction(3)
        session.save_correction({"date": "2025-03-02"}, Tag.EXPENSE)
        session.back_to_mapping()
        session.choose("description", None)

        state = session.advance_to_preview()

        fixed = [row for row in state.rows if row.source_row_number == 3][0]
        self.assertTrue(fixed.is_valid)
        self.assertEqual(fixed.tag, Tag.EXPENSE)

    def test_opening_another_row_replaces_the_open_editor(self):
        session = ImportSession()
        session.load(b"Date,Amount\n,1\n,2\n", filename="two.csv")
        session.advance_to_preview()
        session.open_correction(2)
        session.open_correction(3)
        self.assertEqual(session.state.editor.row_number, 3)

    def test_cancel_closes_the_editor(self):
        session = preview_session()
        session.open_correction(3)
        session.cancel_correction()
        self.assertIsNone(session.state.editor)

    def test_unknown_row_raises(self):
        with self.assertRaises(KeyError):
            preview_session().open_correction(42)


class IllegalTransitionTests(unittest.TestCase):
    def test_cannot_import_from_mapping(self):
        with self.assertRaises(IllegalTransitionError):
            loaded_session().run_import(RecordingSink())

    def test_cannot_edit_rows_before_preview(self):
        with self.assertRaises(IllegalTransitionError):
            loaded_session().open_correction(3)

    def test_cannot_load_over_an_open_file(self):
        with self.assertRaisesRegex(IllegalTransitionError, "preview"):
            preview_session().load(CSV, filename="market.csv")

    def test_cannot_import_with_an_editor_open(self):
        session = preview_session()
        session.open_correction(3)
        with self.assertRaises(IllegalTransitionError):
            session.run_import(RecordingSink())

    def test_cannot_save_without_an_open_editor(self):
        with self.assertRaises(IllegalTransitionError):
            preview_session().save_correction({}, Tag.INCOME)

    def test_cannot_change_mapping_after_import(self):
        session = preview_session()
        session.run_import(RecordingSink())
        with self.assertRaises(IllegalTransitionError):
            session.choose("date", None)
        with self.assertRaises(IllegalTransitionError):
            session.back_to_mapping()


if __name__ == "__main__":
    unittest.main()
