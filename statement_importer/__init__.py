"""Bank statement ingestion and normalization for the ERP finance import."""

__version__ = "0.3.0"

from statement_importer.importer import parse_statement  # noqa: E402
from statement_importer.normalizer import (  # noqa: E402
    NormalizedRow,
    StatementParseResult,
    normalize_matrix,
)

__all__ = [
    "__version__",
    "NormalizedRow",
    "StatementParseResult",
    "normalize_matrix",
    "parse_statement",
]
