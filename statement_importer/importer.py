"""Single entry point: uploaded statement file -> normalized transactions."""

from __future__ import annotations

from typing import Optional

from statement_importer.config import DEFAULT_OPTIONS, ImporterOptions
from statement_importer.decoder import Source, decode_statement
from statement_importer.logging_setup import get_logger
from statement_importer.normalizer import StatementParseResult, normalize_matrix

logger = get_logger(__name__)


def parse_statement(
    source: Source,
    *,
    filename: Optional[str] = None,
    options: Optional[ImporterOptions] = None,
) -> StatementParseResult:
    """
    Decode ``source`` and normalize its first worksheet.

    A file that opens but has no recognisable header yields an empty result
    (``result.no_valid_rows``); a file that cannot be opened raises
    ``StatementDecodeError``.
    """
    options = options or DEFAULT_OPTIONS
    sheet = decode_statement(source, filename=filename, options=options)
    if not sheet.matrix:
        logger.info("statement %s has no rows", filename or "<upload>")
    return normalize_matrix(sheet.matrix, options=options, extra_warnings=sheet.warnings)
