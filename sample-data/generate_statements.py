#!/usr/bin/env python3
"""
Generates sample bank statement exports for trying statement-importer.

Run from the repo root:
    python sample-data/generate_statements.py

Files written next to this script:
  icici_statement.xlsx
    - Four banner rows (bank name, account, period, blank) above the table
    - Combined "Transaction Amount(INR)" column with a "Cr/Dr" indicator
    - "Available Balance(INR)" with comma-grouped text amounts
    - Transaction ID column left as "-" on narration-only rows
    - A blank row between transactions
  hdfc_statement.xlsx
    - Separate "Withdrawal Amt." / "Deposit Amt." columns
    - Cheque/Ref No. column, native date cells, numeric balances
  icici_statement.csv
    - Same table as the ICICI workbook, exported as semicolon text
"""

from datetime import date
from pathlib import Path

import openpyxl

HERE = Path(__file__).parent

ICICI_BANNER = [
    ["ICICI Bank Limited"],
    ["Account Number", "XXXXXXXX4321"],
    ["Statement Period", "01/04/2024 - 30/04/2024"],
    [],
]

ICICI_HEADER = [
    "S No.",
    "Value Date",
    "Transaction Date",
    "Cheque Number",
    "Transaction Remarks",
    "Transaction ID",
    "Transaction Amount(INR)",
    "Cr/Dr",
    "Available Balance(INR)",
]

ICICI_ROWS = [
    [1, "01/04/2024", "01/04/2024", "-", "NEFT-N091240012345-ACME PAYROLL", "S12345678", "85,000.00", "CR", "1,35,000.00"],
    [2, "02/04/2024", "02/04/2024", "-", "UPI/412233445566/grocer@okaxis/Groceries", "-", "1,250.50", "DR", "1,33,749.50"],
    [3, "05/04/2024", "05/04/2024", "000123", "CHQ PAID CLEARING", "-", "20,000.00", "Dr.", "1,13,749.50"],
    [4, "07/04/2024", "07/04/2024", "-", "NEFT IN FROM ABC UTR1234567890", "-", "4,500.00", "Cr", "1,18,249.50"],
    [],
    [5, "09/04/2024", "09/04/2024", "-", "IMPS/P2A/409912345678/RENT", "S87654321", "25,000.00", "DR", "93,249.50"],
]

HDFC_HEADER = ["Date", "Narration", "Chq./Ref.No.", "Value Dt", "Withdrawal Amt.", "Deposit Amt.", "Closing Balance"]

HDFC_ROWS = [
    [date(2024, 4, 1), "SALARY APR 2024", "0000412345678901", date(2024, 4, 1), None, 92000.0, 142000.0],
    [date(2024, 4, 3), "POS 416021XXXXXX1234 FUEL STATION", "0000409312345678", date(2024, 4, 3), 3200.0, None, 138800.0],
    [date(2024, 4, 8), "RTGS DR-HDFC0000001-LANDLORD-UTIBR52024040800123", "UTIBR52024040800123", date(2024, 4, 8), 30000.0, None, 108800.0],
]


def build_icici_workbook(path: Path) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "OpTransactionHistory"
    for row in ICICI_BANNER:
        ws.append(row)
    ws.append(ICICI_HEADER)
    for row in ICICI_ROWS:
        ws.append(row)
    wb.save(path)
    return path


def build_hdfc_workbook(path: Path) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Statement"
    ws.append(["HDFC BANK Ltd.", None, None, "Statement of account"])
    ws.append([])
    ws.append(HDFC_HEADER)
    for row in HDFC_ROWS:
        ws.append(row)
    wb.save(path)
    return path


def build_icici_csv(path: Path) -> Path:
    lines = [";".join(str(cell) for cell in row) for row in ICICI_BANNER]
    lines.append(";".join(ICICI_HEADER))
    lines.extend(";".join(str(cell) for cell in row) for row in ICICI_ROWS)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


if __name__ == "__main__":
    for builder, name in (
        (build_icici_workbook, "icici_statement.xlsx"),
        (build_hdfc_workbook, "hdfc_statement.xlsx"),
        (build_icici_csv, "icici_statement.csv"),
    ):
        print(f"Created: {builder(HERE / name)}")
