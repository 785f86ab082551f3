"""
Row normalization: raw statement matrix -> canonical bank transactions.

Pipeline per file: locate the header row, map its columns to canonical
fields once, read every data row through that map, parse amounts, split
debit/credit, recover a reference, and keep a few debug snapshots.
Unresolvable fields degrade to empty values; they never abort a row.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Mapping, Optional, Sequence

from statement_importer.config import DEFAULT_OPTIONS, ImporterOptions
from statement_importer.diagnostics import DebugRow, DiagnosticsCollector
from statement_importer.headers import (
    HeaderMap,
    build_header_map,
    cell_text,
    is_present,
    locate_header_row,
    row_mapping,
)
from statement_importer.logging_setup import get_logger
from statement_importer.vocabulary import (
    CREDIT_CODE,
    DEBIT_CODE,
    HEADER_DETECTION_TOKENS,
    MIN_REFERENCE_RUN,
    NO_HEADER,
    NO_VALID_ROWS_MESSAGE,
    PLACEHOLDER_VALUES,
    REFERENCE_PREFIXES,
)

logger = get_logger(__name__)

_CURRENCY_SYMBOL_RE = re.compile(r"[₹$€£¥\s]")
_CURRENCY_CODE_RE = re.compile(r"^(?:rs\.?|inr)|inr$", re.IGNORECASE)
_PLAIN_DECIMAL_RE = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)$")
_ACCOUNTING_NEGATIVE_RE = re.compile(r"^\(([0-9.,]+)\)$")
_INDICATOR_RE = re.compile(r"[^A-Z]")
_PREFIX_REFERENCE_RE = re.compile(
    r"(?<![A-Za-z])(?:%s)[^A-Za-z0-9]*([A-Za-z0-9]+)" % "|".join(REFERENCE_PREFIXES),
    re.IGNORECASE,
)
_DIGIT_RE = re.compile(r"\d")


# ══════════════════════════════════════════════════════════════════════════
# Records
# ══════════════════════════════════════════════════════════════════════════

def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class NormalizedRow:
    txn_date: str
    value_date: Optional[str]
    description: str
    reference_no: Optional[str]
    debit: float
    credit: float
    balance: Optional[float]
    currency: str
    raw: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "txn_date": self.txn_date,
            "value_date": self.value_date,
            "description": self.description,
            "reference_no": self.reference_no,
            "debit": self.debit,
            "credit": self.credit,
            "balance": self.balance,
            "currency": self.currency,
            "raw": {key: _json_safe(value) for key, value in self.raw.items()},
        }


@dataclass(frozen=True)
class StatementParseResult:
    rows: tuple[NormalizedRow, ...]
    header_index: int
    detected_headers: tuple[str, ...] = ()
    header_map: Optional[HeaderMap] = None
    debug_rows: tuple[DebugRow, ...] = ()
    warnings: tuple[str, ...] = ()
    dropped_rows: int = 0

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def header_found(self) -> bool:
        return self.header_index != NO_HEADER

    @property
    def no_valid_rows(self) -> bool:
        return not self.rows

    @property
    def message(self) -> str:
        if self.no_valid_rows:
            return NO_VALID_ROWS_MESSAGE
        return f"Parsed {self.row_count} statement rows."

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_count": self.row_count,
            "header_index": self.header_index,
            "detected_headers": list(self.detected_headers),
            "header_map": self.header_map.as_dict() if self.header_map else {},
            "debug_rows": [row.to_dict() for row in self.debug_rows],
            "warnings": list(self.warnings),
            "dropped_rows": self.dropped_rows,
            "message": self.message,
            "rows": [row.to_dict() for row in self.rows],
        }


# ══════════════════════════════════════════════════════════════════════════
# Value parsing
# ══════════════════════════════════════════════════════════════════════════

def parse_number(value: Any) -> Optional[float]:
    """
    Lenient amount parser. Never raises.

    ``"1,23,456.50"`` -> ``123456.5``; ``"Rs. 100"`` and ``"INR 100"`` ->
    ``100.0``; ``"(500)"`` -> ``-500.0``; ``"-"``, ``""`` and ``None`` ->
    ``None``. Only plain decimals are accepted, so ``"1e3"`` and ``"1_000"``
    are ``None``. Native numbers pass through when finite.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, (datetime, date, time)):
        return None

    text = _CURRENCY_SYMBOL_RE.sub("", str(value))
    text = _CURRENCY_CODE_RE.sub("", text)
    if text in PLACEHOLDER_VALUES:
        return None
    match = _ACCOUNTING_NEGATIVE_RE.match(text)
    if match:
        text = "-" + match.group(1)
    text = text.replace(",", "")
    if not _PLAIN_DECIMAL_RE.match(text):
        return None
    number = float(text)
    return number if math.isfinite(number) else None


def extract_reference_no(description: str, min_run: int = MIN_REFERENCE_RUN) -> Optional[str]:
    """
    Best-effort payment reference from narration text.

    Looks for a payment-network prefix (NEFT/IMPS/UPI/RTGS/UTR) followed by
    an alphanumeric run containing a digit, then for the first alphanumeric
    run of at least ``min_run`` characters. Advisory only: merchant names and
    account numbers can produce false positives.
    """
    if not description:
        return None
    for match in _PREFIX_REFERENCE_RE.finditer(description):
        candidate = match.group(1)
        if _DIGIT_RE.search(candidate):
            return candidate
    run = re.search(r"[A-Za-z0-9]{%d,}" % max(1, min_run), description)
    return run.group(0) if run else None


def normalize_indicator(value: Any) -> str:
    return _INDICATOR_RE.sub("", cell_text(value).upper())


def _resolve_reference(fields: Mapping[str, Any], description: str, min_run: int) -> Optional[str]:
    for name in ("transaction_id", "cheque_no", "reference_no"):
        text = cell_text(fields.get(name))
        if text not in PLACEHOLDER_VALUES:
            return text
    return extract_reference_no(description, min_run)


@dataclass(frozen=True)
class _AmountSplit:
    debit: float
    credit: float
    amount: Optional[float]
    indicator: str
    warning: Optional[str] = None


def split_debit_credit(fields: Mapping[str, Any], row_number: int) -> _AmountSplit:
    """
    Separate withdrawal/deposit columns win when either carries a value;
    otherwise a combined amount is assigned by its CR/DR indicator.

    ``fields`` is one row read through a ``HeaderMap`` (see ``HeaderMap.values``).
    At most one side is ever non-zero: a row with both columns filled (a
    "Total" footer, for instance) gets zero on both sides and a warning.
    """
    debit_value = parse_number(fields.get("debit"))
    credit_value = parse_number(fields.get("credit"))
    if debit_value or credit_value:
        debit = abs(debit_value or 0.0)
        credit = abs(credit_value or 0.0)
        if debit and credit:
            warning = (
                f"Row {row_number}: both debit ({debit:.2f}) and credit ({credit:.2f}) "
                "populated; debit and credit left at zero"
            )
            return _AmountSplit(0.0, 0.0, None, "", warning)
        indicator = CREDIT_CODE if credit else DEBIT_CODE
        return _AmountSplit(debit, credit, credit or debit, indicator)

    amount = parse_number(fields.get("transaction_amount"))
    indicator = normalize_indicator(fields.get("crdr"))
    magnitude = abs(amount) if amount else 0.0
    if indicator == CREDIT_CODE:
        return _AmountSplit(0.0, magnitude, amount, indicator)
    if indicator == DEBIT_CODE:
        return _AmountSplit(magnitude, 0.0, amount, indicator)

    warning = None
    if magnitude:
        shown = indicator or "missing"
        warning = (
            f"Row {row_number}: amount {magnitude:.2f} has unrecognised CR/DR indicator "
            f"({shown}); debit and credit left at zero"
        )
    return _AmountSplit(0.0, 0.0, amount, indicator, warning)


# ══════════════════════════════════════════════════════════════════════════
# Row and matrix normalization
# ══════════════════════════════════════════════════════════════════════════

def normalize_row(
    header_map: HeaderMap,
    row: Sequence[Any],
    *,
    row_number: int,
    options: ImporterOptions = DEFAULT_OPTIONS,
    diagnostics: Optional[DiagnosticsCollector] = None,
    warnings: Optional[list[str]] = None,
) -> Optional[NormalizedRow]:
    """Normalize one data row, or return ``None`` when it should be dropped."""
    raw = row_mapping(header_map.headers, row)
    if not any(is_present(value) for value in raw.values()):
        return None

    fields = header_map.values(row)
    txn_date = cell_text(fields["txn_date"])
    value_date = cell_text(fields["value_date"])
    description = cell_text(fields["description"])
    reference = _resolve_reference(fields, description, options.min_reference_run)
    split = split_debit_credit(fields, row_number)
    balance = parse_number(fields["balance"])

    if not any([txn_date, value_date, description, reference, split.debit, split.credit]):
        return None

    if split.warning:
        logger.warning(split.warning)
        if warnings is not None:
            warnings.append(split.warning)

    if diagnostics is not None:
        diagnostics.record(
            raw.keys(),
            crdr=split.indicator,
            amount=split.amount,
            balance=balance,
            reference=reference,
        )

    return NormalizedRow(
        txn_date=txn_date or value_date,
        value_date=value_date or None,
        description=description,
        reference_no=reference or None,
        debit=split.debit,
        credit=split.credit,
        balance=balance,
        currency=options.currency,
        raw=raw,
    )


def normalize_matrix(
    matrix: Sequence[Sequence[Any]],
    *,
    options: Optional[ImporterOptions] = None,
    extra_warnings: Sequence[str] = (),
) -> StatementParseResult:
    """
    Run header location, field resolution, row normalization and diagnostics
    over a decoded matrix. An unrecognised layout yields an empty result.
    """
    options = options or DEFAULT_OPTIONS
    warnings = list(extra_warnings)

    header_index = locate_header_row(matrix, HEADER_DETECTION_TOKENS, options.header_min_matches)
    if header_index == NO_HEADER:
        logger.info("no header row found in %d rows", len(matrix))
        return StatementParseResult(rows=(), header_index=NO_HEADER, warnings=tuple(warnings))

    header_row = list(matrix[header_index])
    header_map = build_header_map(header_row)
    detected_headers = tuple(text for text in header_map.headers if text)
    logger.debug("header row %d: %s", header_index, list(detected_headers))
    logger.debug("unresolved fields: %s", header_map.missing())

    diagnostics = DiagnosticsCollector(options.debug_row_limit)
    rows: list[NormalizedRow] = []
    dropped = 0
    for offset, data_row in enumerate(matrix[header_index + 1:], start=header_index + 2):
        normalized = normalize_row(
            header_map,
            data_row,
            row_number=offset,
            options=options,
            diagnostics=diagnostics,
            warnings=warnings,
        )
        if normalized is None:
            dropped += 1
            continue
        rows.append(normalized)

    logger.info("normalized %d rows (%d dropped) from header row %d", len(rows), dropped, header_index)
    return StatementParseResult(
        rows=tuple(rows),
        header_index=header_index,
        detected_headers=detected_headers,
        header_map=header_map,
        debug_rows=diagnostics.snapshot(),
        warnings=tuple(warnings),
        dropped_rows=dropped,
    )
