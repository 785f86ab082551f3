"""Header row location and field resolution for bank statement matrices."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Sequence

from statement_importer.vocabulary import (
    FIELD_ALIASES,
    HEADER_DETECTION_TOKENS,
    HEADER_MAP_ORDER,
    HEADER_MIN_MATCHES,
    LOOSE_FIELDS,
    LOOSE_MATCH_MIN_LENGTH,
    NO_HEADER,
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_header(value: Any) -> str:
    return _NON_ALNUM_RE.sub("", cell_text(value).lower())


def is_present(value: Any) -> bool:
    return value is not None and cell_text(value) != ""


@lru_cache(maxsize=None)
def _normalized_aliases(aliases: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(normalize_header(alias) for alias in aliases)


def _loose_match(key: str, alias: str) -> bool:
    if min(len(key), len(alias)) < LOOSE_MATCH_MIN_LENGTH:
        return False
    return alias in key or key in alias


# ══════════════════════════════════════════════════════════════════════════
# Header Locator
# ══════════════════════════════════════════════════════════════════════════

def header_match_count(row: Sequence[Any], tokens: Iterable[str] = HEADER_DETECTION_TOKENS) -> tuple[int, int]:
    """Return (distinct tokens matched, distinct cells that matched a token)."""
    cells = [normalize_header(cell) for cell in row]
    cells = [cell for cell in cells if cell]
    matched_tokens = 0
    matched_cells: set[int] = set()
    for token in tokens:
        hits = [idx for idx, cell in enumerate(cells) if token in cell]
        if hits:
            matched_tokens += 1
            matched_cells.update(hits)
    return matched_tokens, len(matched_cells)


def locate_header_row(
    matrix: Sequence[Sequence[Any]],
    tokens: Iterable[str] = HEADER_DETECTION_TOKENS,
    min_matches: int = HEADER_MIN_MATCHES,
) -> int:
    """
    Index of the first row that looks like the statement's column headers.

    Banner and title rows above the table are skipped. Scanning stops at the
    first qualifying row, so summary rows repeated further down are never
    chosen. Returns ``NO_HEADER`` when nothing qualifies.
    """
    tokens = tuple(normalize_header(token) for token in tokens)
    min_cells = min(2, min_matches)
    for row_index, row in enumerate(matrix):
        matched_tokens, matched_cells = header_match_count(row or (), tokens)
        if matched_tokens >= min_matches and matched_cells >= min_cells:
            return row_index
    return NO_HEADER


# ══════════════════════════════════════════════════════════════════════════
# Field Resolver
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class HeaderMap:
    headers: tuple[str, ...]
    columns: Mapping[str, Optional[int]]

    def index_of(self, field: str) -> Optional[int]:
        return self.columns.get(field)

    def header_of(self, field: str) -> Optional[str]:
        idx = self.index_of(field)
        return None if idx is None else self.headers[idx]

    def value_of(self, row: Sequence[Any], field: str) -> Any:
        """Cell of ``row`` in the column mapped to ``field``; ``""`` when unmapped or blank."""
        idx = self.index_of(field)
        if idx is None or idx >= len(row):
            return ""
        value = row[idx]
        return value if is_present(value) else ""

    def values(self, row: Sequence[Any]) -> dict[str, Any]:
        return {name: self.value_of(row, name) for name in self.columns}

    def missing(self) -> list[str]:
        return [name for name, idx in self.columns.items() if idx is None]

    def as_dict(self) -> dict[str, Optional[int]]:
        return dict(self.columns)


def build_header_map(header_row: Sequence[Any]) -> HeaderMap:
    """
    Map each canonical field to the column that supplies it.

    Fields are resolved in ``HEADER_MAP_ORDER`` with the same lookups used
    on data rows: exact aliases, plus containment for ``LOOSE_FIELDS``. A
    column is never claimed twice, and when two headers normalize to the
    same text only the first is considered. Data rows are read through the
    resulting map (see ``HeaderMap.values``).
    """
    headers = tuple(cell_text(cell) for cell in header_row)
    first_index = normalize_keys(row_mapping(headers, range(len(headers))))

    claimed: set[int] = set()
    columns: dict[str, Optional[int]] = {}
    for name in HEADER_MAP_ORDER:
        available = {key: idx for key, idx in first_index.items() if idx not in claimed}
        lookup = resolve_field_loose if name in LOOSE_FIELDS else resolve_field
        chosen = lookup(available, FIELD_ALIASES[name])
        if chosen == "":
            columns[name] = None
            continue
        claimed.add(chosen)
        columns[name] = chosen

    return HeaderMap(headers=headers, columns=MappingProxyType(columns))


def row_mapping(header_row: Sequence[Any], row: Sequence[Any]) -> dict[str, Any]:
    """Key a data row by header text. Blank headers are skipped; repeats keep the first column."""
    mapping: dict[str, Any] = {}
    for idx, header in enumerate(header_row):
        key = cell_text(header)
        if not key or key in mapping:
            continue
        mapping[key] = row[idx] if idx < len(row) else None
    return mapping


def normalize_keys(row: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in row.items():
        nkey = normalize_header(key)
        if nkey and nkey not in normalized:
            normalized[nkey] = value
    return normalized


def resolve_field(row: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    """
    First present value among ``aliases``, tried in order; ``""`` if none.

    ``row`` must be keyed by normalized header text (see ``normalize_keys``).
    """
    for alias in _normalized_aliases(tuple(aliases)):
        value = row.get(alias)
        if is_present(value):
            return value
    return ""


def resolve_field_loose(row: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    """``resolve_field``, then a containment pass so "Available Balance(INR)" meets "balance"."""
    value = resolve_field(row, aliases)
    if is_present(value):
        return value
    for alias in _normalized_aliases(tuple(aliases)):
        for key, candidate in row.items():
            if _loose_match(key, alias) and is_present(candidate):
                return candidate
    return ""
