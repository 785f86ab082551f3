"""
decoder.py: turn an uploaded statement export into a raw cell matrix.

Supports: .xlsx .xlsm (openpyxl), .xls (pandas + xlrd), .ods (pandas + odfpy),
and delimited text exports .csv .tsv .txt.

Public API:
    sheet  = decode_statement("statement.xls")
    matrix = sheet.matrix

Only the first worksheet is read. Cell values keep their native types:
text stays ``str``, numbers stay ``int``/``float``, dates stay
``datetime``/``date``; empty cells are ``None``.
"""

from __future__ import annotations

import csv
import io
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import IO, Any, Optional, Union

import chardet
import openpyxl
import pandas as pd

from statement_importer.config import DEFAULT_OPTIONS, ImporterOptions
from statement_importer.logging_setup import get_logger

logger = get_logger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS = {".csv", ".tsv", ".txt"}
MODERN_WORKBOOK_FORMATS = {".xlsx", ".xlsm"}
LEGACY_WORKBOOK_FORMATS = {".xls"}
ODS_FORMATS = {".ods"}
ALL_FORMATS = TEXT_FORMATS | MODERN_WORKBOOK_FORMATS | LEGACY_WORKBOOK_FORMATS | ODS_FORMATS

ZIP_MAGIC = b"PK\x03\x04"
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
ODS_MIMETYPE = b"application/vnd.oasis.opendocument.spreadsheet"

Cell = Any
RawMatrix = tuple[tuple[Cell, ...], ...]
Source = Union[str, Path, bytes, bytearray, IO[bytes]]


class StatementDecodeError(ValueError):
    """The input could not be read as a spreadsheet or delimited export."""


@dataclass(frozen=True)
class DecodedSheet:
    matrix: RawMatrix
    detected_format: str
    sheet_name: Optional[str] = None
    sheet_names: tuple[str, ...] = ()
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def row_count(self) -> int:
        return len(self.matrix)


# ══════════════════════════════════════════════════════════════════════════════
# INPUT HANDLING
# ══════════════════════════════════════════════════════════════════════════════

def _read_source(source: Source, filename: Optional[str], limit: int) -> tuple[bytes, Optional[str]]:
    """Return (raw bytes, name used for suffix detection)."""
    if isinstance(source, (bytes, bytearray)):
        raw = bytes(source)
        name = filename
    elif isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        raw = path.read_bytes()
        name = filename or path.name
    else:
        raw = source.read()
        if isinstance(raw, str):
            raise StatementDecodeError("Statement upload must be opened in binary mode")
        name = filename or getattr(source, "name", None)
        if not isinstance(name, str):
            name = None

    if limit and len(raw) > limit:
        raise StatementDecodeError(
            f"Statement file is too large ({len(raw):,} bytes; limit {limit:,} bytes)"
        )
    return raw, name


def detect_format(raw: bytes, filename: Optional[str] = None) -> str:
    """Pick a decoder by file extension, falling back to magic bytes."""
    if filename:
        suffix = Path(filename).suffix.lower()
        if suffix:
            if suffix not in ALL_FORMATS:
                supported = ", ".join(sorted(ALL_FORMATS))
                raise StatementDecodeError(f"Unsupported format '{suffix}'. Supported: {supported}")
            return suffix

    if raw.startswith(OLE2_MAGIC):
        return ".xls"
    if raw.startswith(ZIP_MAGIC):
        return ".ods" if ODS_MIMETYPE in raw[:200] else ".xlsx"
    if b"\x00" in raw[:1024]:
        raise StatementDecodeError("Unrecognised binary file; expected a spreadsheet export")
    return ".csv"


# ══════════════════════════════════════════════════════════════════════════════
# CELL NORMALISATION
# ══════════════════════════════════════════════════════════════════════════════

def _native_cell(value: Any) -> Cell:
    """Map pandas/numpy scalars to plain Python values; blanks to None."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        if value.tzinfo is not None:
            value = value.tz_convert(None)
        return value.to_pydatetime()
    if isinstance(value, (datetime, date, str, bool)):
        return value
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _trim_trailing_empty_cells(row: list[Cell]) -> list[Cell]:
    trimmed = list(row)
    while trimmed and (trimmed[-1] is None or (isinstance(trimmed[-1], str) and not trimmed[-1].strip())):
        trimmed.pop()
    return trimmed


def _freeze(rows: list[list[Cell]]) -> RawMatrix:
    return tuple(tuple(row) for row in rows)


# ══════════════════════════════════════════════════════════════════════════════
# WORKBOOK READERS
# ══════════════════════════════════════════════════════════════════════════════

def _ignored_sheets_warning(all_sheets: list[str], used: str) -> list[str]:
    if len(all_sheets) <= 1:
        return []
    others = [name for name in all_sheets if name != used]
    return [f"Multiple sheets found ({len(all_sheets)} total); used '{used}'. Ignored: {others}"]


def _decode_modern_workbook(raw: bytes, suffix: str) -> DecodedSheet:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    except Exception as exc:
        raise StatementDecodeError(f"Could not open workbook: {exc}") from exc

    try:
        sheet_names = [ws.title for ws in workbook.worksheets]
        if not sheet_names:
            return DecodedSheet((), suffix.lstrip("."), warnings=("Workbook contains no worksheets",))
        first = workbook.worksheets[0]
        rows = [
            _trim_trailing_empty_cells([_native_cell(value) for value in values])
            for values in first.iter_rows(values_only=True)
        ]
    except Exception as exc:
        raise StatementDecodeError(f"Could not read worksheet: {exc}") from exc
    finally:
        workbook.close()

    return DecodedSheet(
        matrix=_freeze(rows),
        detected_format=suffix.lstrip("."),
        sheet_name=sheet_names[0],
        sheet_names=tuple(sheet_names),
        warnings=tuple(_ignored_sheets_warning(sheet_names, sheet_names[0])),
    )


def _decode_with_pandas(raw: bytes, suffix: str) -> DecodedSheet:
    if suffix == ".xls":
        engine = "xlrd"
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd; run: pip install xlrd")
    else:
        engine = "odf"
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy; run: pip install odfpy")

    try:
        with pd.ExcelFile(io.BytesIO(raw), engine=engine) as xf:
            sheet_names = [str(name) for name in xf.sheet_names]
            if not sheet_names:
                return DecodedSheet((), suffix.lstrip("."), warnings=("Workbook contains no worksheets",))
            df = xf.parse(xf.sheet_names[0], header=None)
    except Exception as exc:
        raise StatementDecodeError(f"Could not open workbook: {exc}") from exc

    rows = [
        _trim_trailing_empty_cells([_native_cell(value) for value in values])
        for values in df.itertuples(index=False, name=None)
    ]
    return DecodedSheet(
        matrix=_freeze(rows),
        detected_format=suffix.lstrip("."),
        sheet_name=sheet_names[0],
        sheet_names=tuple(sheet_names),
        warnings=tuple(_ignored_sheets_warning(sheet_names, sheet_names[0])),
    )


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITED TEXT EXPORTS
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw[:200_000])
    detected = result.get("encoding")
    return detected or "utf-8"


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode line-by-line: UTF-8, then the detected encoding, then latin-1,
    then CP1252 with replacement. Null bytes are dropped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8-sig", preferred_encoding, "latin-1"):
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", "").rstrip("\r"))
    return "\n".join(decoded_lines)


def _detect_delimiter(text: str) -> str:
    """csv.Sniffer first; otherwise score candidates by column-count consistency."""
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in (",", ";", "\t", "|"):
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


def _decode_text(raw: bytes, suffix: str) -> DecodedSheet:
    text = _read_text_safely(raw, _detect_encoding(raw))
    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    try:
        rows = [
            _trim_trailing_empty_cells([cell.strip() for cell in row])
            for row in csv.reader(io.StringIO(text), delimiter=delimiter)
        ]
    except csv.Error as exc:
        raise StatementDecodeError(f"Could not parse {suffix} file: {exc}") from exc
    return DecodedSheet(matrix=_freeze(rows), detected_format=suffix.lstrip("."))


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def decode_statement(
    source: Source,
    *,
    filename: Optional[str] = None,
    options: Optional[ImporterOptions] = None,
) -> DecodedSheet:
    """
    Read the first worksheet of a statement export into a RawMatrix.

    Args:
        source:   path, raw bytes, or a binary file handle.
        filename: original upload name; its suffix picks the decoder.
                  Without one, the format is sniffed from magic bytes.

    Raises:
        FileNotFoundError     if a path does not exist.
        StatementDecodeError  if the bytes cannot be read as a statement.
        ImportError           if a required spreadsheet engine is missing.
    """
    options = options or DEFAULT_OPTIONS
    raw, name = _read_source(source, filename, options.max_upload_bytes)
    if not raw:
        raise StatementDecodeError("Statement file is empty")

    suffix = detect_format(raw, name)
    logger.debug("decoding %s (%d bytes) as %s", name or "<upload>", len(raw), suffix)

    if suffix in MODERN_WORKBOOK_FORMATS:
        sheet = _decode_modern_workbook(raw, suffix)
    elif suffix in LEGACY_WORKBOOK_FORMATS or suffix in ODS_FORMATS:
        sheet = _decode_with_pandas(raw, suffix)
    else:
        sheet = _decode_text(raw, suffix)

    logger.debug("decoded %d rows from sheet %r", sheet.row_count, sheet.sheet_name)
    return sheet
