from __future__ import annotations

import json
import math
import unittest
from datetime import datetime

from statement_importer.config import ImporterOptions
from statement_importer.normalizer import (
    extract_reference_no,
    normalize_indicator,
    normalize_matrix,
    parse_number,
)
from statement_importer.vocabulary import NO_HEADER, NO_VALID_ROWS_MESSAGE

ICICI_HEADER = (
    "S No.",
    "Value Date",
    "Transaction Date",
    "Cheque Number",
    "Transaction Remarks",
    "Transaction ID",
    "Transaction Amount(INR)",
    "Cr/Dr",
    "Available Balance(INR)",
)


def icici_matrix(*rows):
    return (
        ("ICICI Bank Limited",),
        ("Statement Period", "01/04/2024 - 30/04/2024"),
        (),
        ICICI_HEADER,
    ) + tuple(rows)


class ParseNumberTests(unittest.TestCase):
    def test_grouped_and_placeholder_values(self):
        self.assertEqual(parse_number("1,23,456.50"), 123456.5)
        self.assertEqual(parse_number(" 85,000.00 "), 85000.0)
        self.assertEqual(parse_number("₹ 1,250"), 1250.0)
        self.assertEqual(parse_number(42), 42.0)
        self.assertIsNone(parse_number("-"))
        self.assertIsNone(parse_number(""))
        self.assertIsNone(parse_number(None))
        self.assertIsNone(parse_number("abc"))

    def test_accounting_negative(self):
        self.assertEqual(parse_number("(500)"), -500.0)

    def test_rupee_prefixes_are_stripped(self):
        self.assertEqual(parse_number("Rs. 100"), 100.0)
        self.assertEqual(parse_number("rs 1,000"), 1000.0)
        self.assertEqual(parse_number("INR 1,250.50"), 1250.5)
        self.assertEqual(parse_number("1,250.50 INR"), 1250.5)
        self.assertIsNone(parse_number("Rs."))

    def test_only_plain_decimals_are_accepted(self):
        self.assertIsNone(parse_number("1_000"))
        self.assertIsNone(parse_number("1e3"))
        self.assertIsNone(parse_number("0x10"))
        self.assertIsNone(parse_number("12-34"))
        self.assertEqual(parse_number("-1,000"), -1000.0)
        self.assertEqual(parse_number(".5"), 0.5)

    def test_non_numeric_cell_types(self):
        self.assertIsNone(parse_number(True))
        self.assertIsNone(parse_number(float("nan")))
        self.assertIsNone(parse_number("inf"))
        self.assertIsNone(parse_number(datetime(2024, 4, 1)))


class ReferenceExtractionTests(unittest.TestCase):
    def test_prefix_capture_needs_a_digit(self):
        self.assertEqual(extract_reference_no("NEFT IN FROM ABC UTR1234567890"), "1234567890")

    def test_prefix_with_separator(self):
        self.assertEqual(extract_reference_no("UPI/412233445566/grocer@okaxis"), "412233445566")
        self.assertEqual(extract_reference_no("NEFT-N091240012345-ACME"), "N091240012345")

    def test_long_run_fallback(self):
        self.assertEqual(extract_reference_no("CLG CHQ 0000123456789 PAID"), "0000123456789")

    def test_nothing_to_extract(self):
        self.assertIsNone(extract_reference_no("ATM CASH"))
        self.assertIsNone(extract_reference_no(""))

    def test_indicator_normalization(self):
        self.assertEqual(normalize_indicator("Cr."), "CR")
        self.assertEqual(normalize_indicator(" dr "), "DR")
        self.assertEqual(normalize_indicator(None), "")


class NormalizeMatrixTests(unittest.TestCase):
    def test_banner_header_and_one_deposit_row(self):
        matrix = (
            ("XYZ Bank statement for April",),
            ("Date", "Narration", "Withdrawal", "Deposit", "Balance"),
            ("01/04/2024", "NEFT IN FROM ABC UTR1234567890", "", "5000.00", "105000.00"),
        )
        result = normalize_matrix(matrix)
        self.assertEqual(result.row_count, 1)
        row = result.rows[0]
        self.assertEqual(row.debit, 0.0)
        self.assertEqual(row.credit, 5000.0)
        self.assertEqual(row.balance, 105000.0)
        self.assertEqual(row.reference_no, "1234567890")
        self.assertIn("NEFT IN FROM ABC", row.description)
        self.assertEqual(row.txn_date, "01/04/2024")

    def test_banner_rows_do_not_change_output(self):
        header = ("Date", "Narration", "Withdrawal", "Deposit", "Balance")
        data = ("01/04/2024", "UPI/412233445566/shop", "250", "", "1000")
        baseline = normalize_matrix((header, data)).rows
        for padding in range(1, 5):
            banners = tuple((f"banner {idx}",) for idx in range(padding))
            result = normalize_matrix(banners + (header, data))
            self.assertEqual(result.header_index, padding)
            self.assertEqual(result.rows, baseline)

    def test_transaction_id_beats_generic_reference(self):
        matrix = (
            ("Transaction Date", "Narration", "Reference", "Transaction ID", "Debit", "Balance"),
            ("2024-04-01", "NEFT-N0912400", "REF-GENERIC-1", "S12345678", "10", "90"),
        )
        self.assertEqual(normalize_matrix(matrix).rows[0].reference_no, "S12345678")

    def test_generic_reference_used_without_transaction_id(self):
        matrix = (
            ("Transaction Date", "Narration", "Reference", "Debit", "Balance"),
            ("2024-04-01", "NEFT-N0912400", "REF-GENERIC-1", "10", "90"),
        )
        self.assertEqual(normalize_matrix(matrix).rows[0].reference_no, "REF-GENERIC-1")

    def test_description_only_row_is_retained(self):
        matrix = (
            ("Transaction Date", "Narration", "Debit", "Credit", "Balance"),
            ("", "Opening note", "", "", ""),
        )
        result = normalize_matrix(matrix)
        self.assertEqual(result.row_count, 1)
        row = result.rows[0]
        self.assertEqual(row.description, "Opening note")
        self.assertEqual((row.debit, row.credit, row.balance), (0.0, 0.0, None))
        self.assertEqual(row.txn_date, "")

    def test_icici_credit_row(self):
        result = normalize_matrix(
            icici_matrix(
                (1, "01/04/2024", "01/04/2024", "-", "NEFT-N091240012345-ACME PAYROLL", "S12345678", "85,000.00", "CR", "1,35,000.00"),
            )
        )
        self.assertEqual(result.header_index, 3)
        self.assertEqual(result.row_count, 1)
        row = result.rows[0]
        self.assertEqual(row.txn_date, "01/04/2024")
        self.assertEqual(row.value_date, "01/04/2024")
        self.assertEqual(row.description, "NEFT-N091240012345-ACME PAYROLL")
        self.assertEqual(row.reference_no, "S12345678")
        self.assertEqual(row.credit, 85000.0)
        self.assertEqual(row.debit, 0.0)
        self.assertEqual(row.balance, 135000.0)
        self.assertEqual(row.currency, "INR")
        self.assertEqual(row.raw["Cr/Dr"], "CR")

    def test_narration_reference_when_id_is_placeholder(self):
        result = normalize_matrix(
            icici_matrix(
                (4, "07/04/2024", "07/04/2024", "-", "NEFT IN FROM ABC UTR1234567890", "-", "4,500.00", "Cr", "1,18,249.50"),
            )
        )
        row = result.rows[0]
        self.assertEqual(row.reference_no, "1234567890")
        self.assertEqual(row.credit, 4500.0)
        self.assertEqual(row.balance, 118249.5)

    def test_cheque_number_is_used_as_reference(self):
        result = normalize_matrix(
            icici_matrix((3, "05/04/2024", "05/04/2024", "000123", "CHQ PAID", "-", "20,000.00", "Dr.", "1,13,749.50")),
        )
        row = result.rows[0]
        self.assertEqual(row.reference_no, "000123")
        self.assertEqual(row.debit, 20000.0)
        self.assertEqual(row.credit, 0.0)

    def test_debit_and_credit_are_mutually_exclusive(self):
        result = normalize_matrix(
            icici_matrix(
                (1, "01/04/2024", "01/04/2024", "-", "A", "-", "10", "CR", "10"),
                (2, "02/04/2024", "02/04/2024", "-", "B", "-", "5", "DR", "5"),
                (3, "03/04/2024", "03/04/2024", "-", "C", "-", "7", "XX", "5"),
                (4, "04/04/2024", "04/04/2024", "-", "D", "-", "-", "CR", "5"),
            )
        )
        self.assertEqual(result.row_count, 4)
        for row in result.rows:
            self.assertFalse(row.debit > 0 and row.credit > 0)
            self.assertGreaterEqual(row.debit, 0.0)
            self.assertGreaterEqual(row.credit, 0.0)

    def test_unrecognised_indicator_keeps_row_and_warns(self):
        result = normalize_matrix(
            icici_matrix((7, "03/04/2024", "03/04/2024", "-", "MYSTERY", "-", "7", "XX", "5")),
        )
        self.assertEqual(result.row_count, 1)
        self.assertEqual((result.rows[0].debit, result.rows[0].credit), (0.0, 0.0))
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("Row 5", result.warnings[0])
        self.assertIn("unrecognised CR/DR indicator", result.warnings[0])

    def test_blank_and_empty_rows_are_dropped(self):
        result = normalize_matrix(
            icici_matrix(
                (),
                ("", None, "", "", "", "", "", "", ""),
                (None, None, None, "-", None, "-", None, None, None),
                (1, "01/04/2024", "01/04/2024", "-", "A", "-", "10", "CR", "10"),
            )
        )
        self.assertEqual(result.row_count, 1)
        self.assertEqual(result.dropped_rows, 3)

    def test_row_with_only_balance_is_dropped(self):
        result = normalize_matrix(icici_matrix((None, None, None, None, None, None, None, None, "9,999.00")))
        self.assertTrue(result.no_valid_rows)
        self.assertEqual(result.message, NO_VALID_ROWS_MESSAGE)

    def test_value_date_fills_missing_transaction_date(self):
        result = normalize_matrix(
            icici_matrix((1, "01/04/2024", "", "-", "A", "-", "10", "CR", "10")),
        )
        self.assertEqual(result.rows[0].txn_date, "01/04/2024")

    def test_missing_value_date_is_none(self):
        result = normalize_matrix(
            (("Transaction Date", "Narration", "Debit", "Credit", "Balance"), ("2024-04-01", "Rent", "500", "", "100")),
        )
        row = result.rows[0]
        self.assertIsNone(row.value_date)
        self.assertEqual(row.debit, 500.0)
        self.assertIsNone(row.reference_no)

    def test_withdrawal_deposit_columns(self):
        matrix = (
            ("HDFC BANK Ltd.",),
            ("Date", "Narration", "Chq./Ref.No.", "Value Dt", "Withdrawal Amt.", "Deposit Amt.", "Closing Balance"),
            (datetime(2024, 4, 1), "SALARY", "0000412345678901", datetime(2024, 4, 1), None, 92000.0, 142000.0),
            (datetime(2024, 4, 3), "FUEL", "0000409312345678", datetime(2024, 4, 3), 3200.0, None, 138800.0),
        )
        result = normalize_matrix(matrix)
        self.assertEqual(result.header_index, 1)
        salary, fuel = result.rows
        self.assertEqual(salary.txn_date, "2024-04-01")
        self.assertEqual(salary.value_date, "2024-04-01")
        self.assertEqual((salary.debit, salary.credit), (0.0, 92000.0))
        self.assertEqual((fuel.debit, fuel.credit), (3200.0, 0.0))
        self.assertEqual(salary.reference_no, "0000412345678901")
        self.assertEqual(fuel.balance, 138800.0)

    def test_both_sided_row_gets_zero_amounts_with_warning(self):
        matrix = (
            ("Transaction Date", "Narration", "Debit", "Credit", "Balance"),
            ("2024-04-01", "Reversal", "100", "250", "1000"),
        )
        result = normalize_matrix(matrix)
        row = result.rows[0]
        self.assertEqual((row.debit, row.credit), (0.0, 0.0))
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("Row 2: both debit (100.00) and credit (250.00) populated", result.warnings[0])
        self.assertEqual(result.debug_rows[0].amount, None)

    def test_total_footer_does_not_become_a_transaction(self):
        matrix = (
            ("Date", "Narration", "Withdrawal Amt", "Deposit Amt", "Closing Balance"),
            ("01/04/2024", "ATM", "500", "", "9500"),
            ("", "Total", "50000", "60000", ""),
        )
        result = normalize_matrix(matrix)
        amounts = [(row.description, row.debit, row.credit) for row in result.rows]
        self.assertEqual(amounts, [("ATM", 500.0, 0.0), ("Total", 0.0, 0.0)])
        self.assertEqual(sum(row.credit for row in result.rows), 0.0)
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("Row 3", result.warnings[0])

    def test_balance_comes_from_the_column_the_header_map_reports(self):
        matrix = (
            ("Date", "Narration", "Debit", "Credit", "Balance", "Available Balance"),
            ("01/04/2024", "Rent", "500", "", "9,000", "8,500"),
        )
        result = normalize_matrix(matrix)
        balance_column = result.header_map.index_of("balance")
        self.assertEqual(result.header_map.header_of("balance"), "Available Balance")
        self.assertEqual(result.rows[0].balance, parse_number(matrix[1][balance_column]))
        self.assertEqual(result.rows[0].balance, 8500.0)

    def test_no_header_gives_empty_result(self):
        result = normalize_matrix((("Name", "Amount"), ("Alice", "10")))
        self.assertEqual(result.header_index, NO_HEADER)
        self.assertFalse(result.header_found)
        self.assertEqual(result.rows, ())
        self.assertEqual(result.debug_rows, ())
        self.assertEqual(result.message, NO_VALID_ROWS_MESSAGE)

    def test_debug_rows_are_capped(self):
        rows = [
            (idx, "01/04/2024", "01/04/2024", "-", f"ROW {idx}", "-", "10", "CR", "10")
            for idx in range(1, 9)
        ]
        result = normalize_matrix(icici_matrix(*rows))
        self.assertEqual(result.row_count, 8)
        self.assertEqual(len(result.debug_rows), 5)
        first = result.debug_rows[0]
        self.assertEqual(first.crdr, "CR")
        self.assertEqual(first.amount, 10.0)
        self.assertEqual(first.keys[1], "Value Date")

    def test_options_change_currency_and_debug_limit(self):
        options = ImporterOptions(currency="USD", debug_row_limit=1)
        result = normalize_matrix(
            icici_matrix(
                (1, "01/04/2024", "01/04/2024", "-", "A", "-", "10", "CR", "10"),
                (2, "02/04/2024", "02/04/2024", "-", "B", "-", "10", "DR", "0"),
            ),
            options=options,
        )
        self.assertEqual({row.currency for row in result.rows}, {"USD"})
        self.assertEqual(len(result.debug_rows), 1)

    def test_normalization_is_deterministic(self):
        matrix = icici_matrix(
            (1, "01/04/2024", "01/04/2024", "-", "UPI/412233445566/shop", "-", "1,250.50", "DR", "1,33,749.50"),
        )
        self.assertEqual(normalize_matrix(matrix), normalize_matrix(matrix))

    def test_result_is_json_serialisable(self):
        matrix = (
            ("Date", "Narration", "Withdrawal Amt.", "Deposit Amt.", "Closing Balance"),
            (datetime(2024, 4, 1), "SALARY", None, 92000.0, 142000.0),
        )
        payload = json.loads(json.dumps(normalize_matrix(matrix).to_dict()))
        self.assertEqual(payload["row_count"], 1)
        self.assertEqual(payload["rows"][0]["raw"]["Date"], "2024-04-01T00:00:00")
        self.assertTrue(math.isclose(payload["rows"][0]["credit"], 92000.0))
        self.assertEqual(payload["header_map"]["debit"], 2)


if __name__ == "__main__":
    unittest.main()
