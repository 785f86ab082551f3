"""Constant tables for bank statement header detection and field resolution.

All values are stored in normalized form (see ``headers.normalize_header``)
unless noted otherwise. Alias tuples are ordered: the first alias that
resolves wins, so more specific spellings come first.
"""

from __future__ import annotations

from types import MappingProxyType

HEADER_DETECTION_TOKENS = (
    "transactiondate",
    "txndate",
    "valuedate",
    "narration",
    "remarks",
    "description",
    "particulars",
    "withdrawal",
    "debit",
    "deposit",
    "credit",
    "balance",
    "crdr",
    "transactionamountinr",
    "availablebalanceinr",
)

FIELD_ALIASES = MappingProxyType({
    "txn_date": ("transactiondate", "txndate", "txn.date", "transaction date", "trandate", "date"),
    "value_date": ("valuedate", "value date", "valuedt"),
    "description": (
        "transactionremarks",
        "remarks",
        "narration",
        "description",
        "transaction particulars",
        "transactionparticulars",
        "particulars",
    ),
    "debit": (
        "withdrawalamt",
        "withdrawalamount",
        "withdrawalamountinr",
        "withdrawal",
        "withdrawals",
        "debit",
        "debitamt",
        "debitamount",
        "debitamountinr",
        "dramount",
        "dr",
    ),
    "credit": (
        "depositamt",
        "depositamount",
        "depositamountinr",
        "deposit",
        "deposits",
        "credit",
        "creditamt",
        "creditamount",
        "creditamountinr",
        "cramount",
        "cr",
    ),
    "balance": (
        "available balance(inr)",
        "availablebalanceinr",
        "availablebalance",
        "balance",
        "closingbalance",
        "runningbalance",
        "balanceinr",
        "balance(inr)",
        "balancein",
    ),
    "crdr": ("cr/dr", "crdr", "drcr", "dr/cr"),
    "transaction_amount": (
        "transaction amount(inr)",
        "transaction amount",
        "transactionamountinr",
        "transactionamount",
    ),
    "reference_no": (
        "transactionid",
        "transactionref",
        "referenceno",
        "reference",
        "chqno",
        "chequenumber",
        "utr",
        "rrn",
    ),
    "transaction_id": ("transaction id", "transactionid"),
    "cheque_no": ("chequeno", "cheque no", "chqno", "cheque number", "chq/refno", "chqrefno"),
})

# Fields whose headers vary enough between banks to justify containment
# matching. Date columns stay exact, and so do the debit/credit split columns:
# a bare "Amount" header would otherwise be contained in "withdrawalamount".
LOOSE_FIELDS = frozenset({
    "balance",
    "crdr",
    "transaction_amount",
    "reference_no",
    "transaction_id",
    "cheque_no",
})

# Claim order used when building a HeaderMap. Earlier fields win contested columns.
HEADER_MAP_ORDER = (
    "txn_date",
    "value_date",
    "description",
    "transaction_id",
    "cheque_no",
    "reference_no",
    "crdr",
    "transaction_amount",
    "balance",
    "debit",
    "credit",
)

CREDIT_CODE = "CR"
DEBIT_CODE = "DR"
DEFAULT_CURRENCY = "INR"
PLACEHOLDER_VALUES = frozenset({"", "-"})

REFERENCE_PREFIXES = ("NEFT", "IMPS", "UPI", "RTGS", "UTR")
MIN_REFERENCE_RUN = 10

DEBUG_ROW_LIMIT = 5
DEBUG_KEY_LIMIT = 20
HEADER_MIN_MATCHES = 2
LOOSE_MATCH_MIN_LENGTH = 4

NO_HEADER = -1
NO_VALID_ROWS_MESSAGE = "No valid rows found in statement."
